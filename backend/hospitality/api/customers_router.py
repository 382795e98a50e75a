"""Customer lookup and loyalty enrolment used by the POS payment flow."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from hospitality.db.dependencies import require_restaurant
from hospitality.errors import ConflictError, NotFoundError
from hospitality.loyalty import tier_for_customer
from hospitality.storage.repositories import CustomerRepository


router = APIRouter(prefix="/api/customers", tags=["customers"])


class CreateCustomerRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    loyalty_enrolled: bool = False


def _with_tier(customer: dict) -> dict:
    return {**customer, "loyalty_tier": tier_for_customer(customer)}


@router.post("", status_code=201, summary="Register a customer")
async def create_customer(
    request: CreateCustomerRequest,
    req: Request,
    profile: dict = Depends(require_restaurant),
):
    customers = CustomerRepository(req.app.state.storage)
    phone = request.phone.strip() if request.phone else None
    if phone and customers.get_by_phone(profile["restaurant_id"], phone):
        raise ConflictError("A customer with this phone number already exists")
    customer = customers.create(
        profile["restaurant_id"], request.name.strip(), phone=phone,
        email=request.email, loyalty_enrolled=request.loyalty_enrolled,
    )
    return _with_tier(customer)


@router.get("", summary="List customers")
async def list_customers(req: Request, profile: dict = Depends(require_restaurant)):
    return [_with_tier(c) for c in CustomerRepository(req.app.state.storage).list(profile["restaurant_id"])]


@router.get("/lookup", summary="Find a customer by phone number")
async def lookup_customer(
    req: Request,
    phone: str = Query(..., min_length=1),
    profile: dict = Depends(require_restaurant),
):
    customer = CustomerRepository(req.app.state.storage).get_by_phone(profile["restaurant_id"], phone.strip())
    if customer is None:
        raise NotFoundError("No customer found with that phone number")
    return _with_tier(customer)


@router.get("/{customer_id}/loyalty", summary="Loyalty point transactions for a customer")
async def loyalty_history(
    customer_id: str,
    req: Request,
    profile: dict = Depends(require_restaurant),
):
    """Oldest first, alongside the customer's current balance and tier."""
    customers = CustomerRepository(req.app.state.storage)
    customer = customers.get(profile["restaurant_id"], customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return {
        "customer": _with_tier(customer),
        "transactions": customers.loyalty_history(profile["restaurant_id"], customer_id),
    }
