"""
Orders API router: POS submission, order list and stats, edits,
cancellation, bills and payment.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from hospitality.billing import render_receipt
from hospitality.db.dependencies import get_actor, get_order_service, get_payment_service, require_restaurant
from hospitality.services.order_service import OrderService
from hospitality.services.payment_service import PaymentService
from hospitality.state_machine import Actor
from hospitality.storage.repositories import RestaurantRepository


router = APIRouter(prefix="/api/orders", tags=["orders"])


# ---------- Request Models ----------

class CartLine(BaseModel):
    menu_item_id: str
    quantity: int = Field(default=1, ge=1)
    notes: List[str] = []


class SubmitOrderRequest(BaseModel):
    items: List[CartLine] = Field(min_length=1)
    customer_name: str = "Guest"
    table_label: Optional[str] = None
    customer_id: Optional[str] = None
    source: Optional[str] = None
    send_to_kitchen: bool = True


class UpdateItemsRequest(BaseModel):
    items: List[CartLine] = Field(min_length=1)


class StatusRequest(BaseModel):
    status: str


class PaymentRequest(BaseModel):
    method: str
    customer_id: Optional[str] = None


def _dump(record):
    return record.model_dump(mode="json") if record is not None else None


# ---------- Endpoints ----------

@router.post("", status_code=201, summary="Submit an order from the POS")
async def submit_order(
    request: SubmitOrderRequest,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Create an order priced from the current menu. Unless send_to_kitchen is
    false, a kitchen ticket is created with it in the same write.
    """
    order, ticket = service.submit_order(
        profile["restaurant_id"],
        actor,
        [line.model_dump() for line in request.items],
        customer_name=request.customer_name,
        table_label=request.table_label,
        customer_id=request.customer_id,
        source=request.source,
        send_to_kitchen=request.send_to_kitchen,
    )
    return {"order": _dump(order), "ticket": _dump(ticket)}


@router.get("", summary="List orders (newest first)")
async def list_orders(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    return [_dump(order) for order in service.list_orders(profile["restaurant_id"], status=status, limit=limit)]


@router.get("/stats", summary="Order totals for the orders view")
async def order_stats(
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    return service.order_stats(profile["restaurant_id"]).to_dict()


@router.get("/{order_id}", summary="Get an order with its ticket and history")
async def get_order(
    order_id: str,
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    restaurant_id = profile["restaurant_id"]
    order = service.get_order(restaurant_id, order_id)
    ticket = service.tickets.get_for_order(restaurant_id, order_id)
    return {
        "order": _dump(order),
        "ticket": _dump(ticket),
        "history": [entry.model_dump() for entry in service.log.history(restaurant_id, order_id)],
    }


@router.put("/{order_id}/items", summary="Replace the items of a new order")
async def update_items(
    order_id: str,
    request: UpdateItemsRequest,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    order = service.update_items(
        profile["restaurant_id"], order_id, [line.model_dump() for line in request.items], actor
    )
    return _dump(order)


@router.post("/{order_id}/status", summary="Move an order to another status")
async def update_status(
    order_id: str,
    request: StatusRequest,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    return _dump(service.advance_order(profile["restaurant_id"], order_id, request.status, actor))


@router.post("/{order_id}/cancel", summary="Cancel an order and its kitchen ticket")
async def cancel_order(
    order_id: str,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    return _dump(service.cancel_order(profile["restaurant_id"], order_id, actor))


@router.get("/{order_id}/bill", summary="Compose the bill for an order")
async def get_bill(
    order_id: str,
    req: Request,
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    order, bill = service.bill_for(profile["restaurant_id"], order_id)
    restaurant = RestaurantRepository(req.app.state.storage).get(profile["restaurant_id"])
    receipt = render_receipt(
        bill,
        restaurant_name=restaurant["name"] if restaurant else None,
        order_id=order.id,
        source=f"Table {order.table_label}" if order.table_label else order.customer_name,
        payment_method=order.payment_method,
        paid_at=order.paid_at,
    )
    return {"order_id": order.id, "status": order.status.value, "bill": bill.to_dict(), "receipt": receipt}


@router.post("/{order_id}/pay", summary="Take payment for a ready order")
async def pay_order(
    order_id: str,
    request: PaymentRequest,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payment_service),
):
    result = payments.pay(profile["restaurant_id"], order_id, request.method, actor, customer_id=request.customer_id)
    return result.to_dict()
