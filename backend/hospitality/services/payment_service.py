"""Settle a ready order: complete it, stamp payment, accrue loyalty."""

import logging
from dataclasses import dataclass
from typing import Optional

from hospitality.billing import Bill, compose_bill, render_receipt
from hospitality.errors import AuthorizationError, InvalidTransition, NotFoundError, ValidationError
from hospitality.loyalty import loyalty_tier, points_for, visit_patch
from hospitality.schemas import Order, TicketStatus
from hospitality.state_machine import Actor, ActorKind
from hospitality.utils.time_utils import iso_utc
from hospitality.services.order_service import OrderService

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "card", "upi")
PAYMENT_ACTORS = frozenset({ActorKind.CASHIER, ActorKind.MANAGER})


@dataclass
class PaymentResult:
    order: Order
    bill: Bill
    receipt: str
    customer: Optional[dict] = None
    points_earned: int = 0
    tier: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "order": self.order.model_dump(mode="json"),
            "bill": self.bill.to_dict(),
            "receipt": self.receipt,
            "customer": self.customer,
            "points_earned": self.points_earned,
            "loyalty_tier": self.tier,
        }


class PaymentService:
    def __init__(self, orders: OrderService, restaurant_name: Optional[str] = None):
        self.orders = orders
        self.customers = orders.customers
        self.restaurant_name = restaurant_name

    def pay(self, restaurant_id: str, order_id: str, method: str, actor: Actor,
            customer_id: Optional[str] = None) -> PaymentResult:
        """
        Take payment for a ready order.

        Raises:
            ValidationError: unknown payment method
            NotFoundError: order or customer missing
            InvalidTransition: order is not ready
            AuthorizationError: actor may not take payment

        The order is completed by the system actor, carrying the caller's id.
        """
        if actor.kind not in PAYMENT_ACTORS:
            raise AuthorizationError(
                f"{actor.kind.value} cannot take payment",
                {"allowed_actors": sorted(kind.value for kind in PAYMENT_ACTORS)},
            )
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unsupported payment method '{method}'", {"allowed": list(PAYMENT_METHODS)})

        order = self.orders.get_order(restaurant_id, order_id)
        if order.status != TicketStatus.READY:
            raise InvalidTransition(
                order.status.value, TicketStatus.COMPLETED.value,
                "Only orders that are ready can be paid",
            )

        customer_id = customer_id or order.customer_id
        customer = None
        if customer_id:
            customer = self.customers.get(restaurant_id, customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")

        bill = compose_bill(order.items, self.orders.tax_rate)
        paid_at = iso_utc()
        order = self.orders.advance_order(
            restaurant_id, order_id, TicketStatus.COMPLETED, Actor(actor.id, ActorKind.SYSTEM),
            extra_patch={
                "payment_method": method,
                "paid_at": paid_at,
                "customer_id": customer_id,
                "subtotal": bill.subtotal,
                "tax": bill.tax,
                "total": bill.total,
            },
        )
        logger.info("Order %s paid by %s (%.2f)", order_id, method, bill.total)

        points = 0
        if customer is not None:
            customer, points = self._accrue(restaurant_id, customer, order, paid_at)

        receipt = render_receipt(
            bill,
            restaurant_name=self.restaurant_name,
            order_id=order.id,
            source=order.table_label and f"Table {order.table_label}" or order.customer_name,
            payment_method=method,
            paid_at=paid_at,
        )
        tier = loyalty_tier(customer["total_spent"], customer["visit_count"]) if customer else None
        return PaymentResult(order, bill, receipt, customer, points, tier)

    def _accrue(self, restaurant_id: str, customer: dict, order: Order, paid_at: str):
        patch = visit_patch(customer, order.total, paid_at)
        points = points_for(order.total) if customer.get("loyalty_enrolled") else 0
        if points > 0:
            patch["loyalty_points"] = int(customer.get("loyalty_points") or 0) + points
        updated = self.customers.update(restaurant_id, customer["id"], patch) or {**customer, **patch}

        if points > 0:
            self.customers.record_loyalty(
                restaurant_id, customer["id"], "earn", points,
                source="order", source_id=order.id,
                notes=f"Earned from order #{order.id[:8]}",
            )
            logger.info("Customer %s earned %d loyalty point(s)", customer["id"], points)
        return updated, points
