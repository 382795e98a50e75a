"""Kitchen display API router."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hospitality.db.dependencies import get_actor, get_order_service, require_restaurant
from hospitality.services.order_service import OrderService
from hospitality.state_machine import Actor, allowed_targets


router = APIRouter(prefix="/api/kitchen", tags=["kitchen"])


class TicketStatusRequest(BaseModel):
    status: str


@router.get("/tickets", summary="Active kitchen tickets (newest first)")
async def list_tickets(
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    return [
        {**ticket.model_dump(mode="json"), "next": allowed_targets(ticket.status)}
        for ticket in service.active_tickets(profile["restaurant_id"])
    ]


@router.get("/stats", summary="Counts for the kitchen display")
async def kitchen_stats(
    profile: dict = Depends(require_restaurant),
    service: OrderService = Depends(get_order_service),
):
    return service.ticket_stats(profile["restaurant_id"]).to_dict()


@router.post("/tickets/{ticket_id}/status", summary="Advance a kitchen ticket")
async def update_ticket_status(
    ticket_id: str,
    request: TicketStatusRequest,
    profile: dict = Depends(require_restaurant),
    actor: Actor = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Move a ticket to `status`. The linked order follows. Returns 409 when
    the move is not allowed from the ticket's current status.
    """
    ticket = service.advance_ticket(profile["restaurant_id"], ticket_id, request.status, actor)
    return ticket.model_dump(mode="json")
