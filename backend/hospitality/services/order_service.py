"""
Order workflow: submission, kitchen progress, cancellation and edits.

An order, its kitchen ticket and their creation audit rows are written
together through Storage.insert_many, so a ticket never exists without its
order and vice versa. Ticket transitions are mirrored onto the linked
order (and order transitions onto the ticket) whenever the other record can
follow.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from hospitality import config
from hospitality.billing import Bill, compose_bill
from hospitality.errors import AuthorizationError, ConflictError, InvalidTransition, NotFoundError, ValidationError
from hospitality.realtime import ChangeFeed
from hospitality.schemas import KitchenTicket, Order, TicketStatus
from hospitality.state_machine import Actor, StatusMachine, can_transition, parse_status
from hospitality.stats import OrderStats, compute_stats
from hospitality.storage.base import Storage
from hospitality.storage.repositories import (
    CustomerRepository,
    MenuRepository,
    OrderRepository,
    TicketRepository,
    TransitionLogRepository,
)

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, storage: Storage, feed: Optional[ChangeFeed] = None, tax_rate: Optional[float] = None):
        self.storage = storage
        self.tax_rate = config.TAX_RATE if tax_rate is None else tax_rate
        self.orders = OrderRepository(storage)
        self.tickets = TicketRepository(storage)
        self.menu = MenuRepository(storage)
        self.customers = CustomerRepository(storage)
        self.log = TransitionLogRepository(storage)
        self.ticket_machine = StatusMachine(self.tickets, self.log, feed)
        self.order_machine = StatusMachine(self.orders, self.log, feed)
        # Mirrored moves must not announce "ready" a second time
        self._ticket_mirror = StatusMachine(self.tickets, self.log)
        self._order_mirror = StatusMachine(self.orders, self.log)

    # ---------- Queries ----------

    def get_order(self, restaurant_id: str, order_id: str) -> Order:
        order = self.orders.get(restaurant_id, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def get_ticket(self, restaurant_id: str, ticket_id: str) -> KitchenTicket:
        ticket = self.tickets.get(restaurant_id, ticket_id)
        if ticket is None:
            raise NotFoundError(f"Kitchen ticket {ticket_id} not found")
        return ticket

    def list_orders(self, restaurant_id: str, status: Optional[str] = None, limit: int = 100) -> List[Order]:
        if status is not None:
            status = parse_status(status).value
        return self.orders.list_recent(restaurant_id, limit=limit, status=status)

    def active_orders(self, restaurant_id: str) -> List[Order]:
        return self.orders.list_active(restaurant_id)

    def active_tickets(self, restaurant_id: str) -> List[KitchenTicket]:
        return self.tickets.list_active(restaurant_id)

    def order_stats(self, restaurant_id: str) -> OrderStats:
        return compute_stats(self.orders.list_recent(restaurant_id, limit=None))

    def ticket_stats(self, restaurant_id: str) -> OrderStats:
        return compute_stats(self.tickets.list_active(restaurant_id))

    def bill_for(self, restaurant_id: str, order_id: str) -> Tuple[Order, Bill]:
        order = self.get_order(restaurant_id, order_id)
        return order, compose_bill(order.items, self.tax_rate)

    # ---------- Commands ----------

    def _resolve_lines(self, restaurant_id: str, lines: Iterable[Dict[str, Any]]) -> List[dict]:
        """Price cart lines from the menu as it is right now."""
        lines = list(lines or [])
        if not lines:
            raise ValidationError("Order must contain at least one item")

        menu = {row["id"]: row for row in self.menu.list(restaurant_id)}
        items = []
        for line in lines:
            menu_item_id = line.get("menu_item_id")
            menu_item = menu.get(menu_item_id)
            if menu_item is None or not menu_item.get("is_available", True):
                raise NotFoundError(
                    f"Menu item {menu_item_id} not found or unavailable",
                    {"menu_item_id": menu_item_id},
                )
            quantity = line.get("quantity", 1)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValidationError("Quantity must be a positive integer", {"menu_item_id": menu_item_id})
            items.append({
                "name": menu_item["name"],
                "quantity": quantity,
                "unit_price": round(float(menu_item["price"]), 2),
                "notes": [str(note) for note in line.get("notes") or []],
                "menu_item_id": menu_item_id,
            })
        return items

    def submit_order(
        self,
        restaurant_id: str,
        actor: Actor,
        items: Iterable[Dict[str, Any]],
        customer_name: str = "Guest",
        table_label: Optional[str] = None,
        customer_id: Optional[str] = None,
        source: Optional[str] = None,
        send_to_kitchen: bool = True,
    ) -> Tuple[Order, Optional[KitchenTicket]]:
        """
        Create an order (and its kitchen ticket) from cart lines.

        Raises:
            ValidationError: empty cart or bad quantity
            NotFoundError: unknown/unavailable menu item or unknown customer
        """
        line_items = self._resolve_lines(restaurant_id, items)
        if customer_id is not None and self.customers.get(restaurant_id, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        bill = compose_bill(line_items, self.tax_rate)
        customer_name = (customer_name or "").strip() or "Guest"
        order_row = self.orders.build_row(
            restaurant_id,
            id=str(uuid4()),
            customer_name=customer_name,
            table_label=table_label,
            items=line_items,
            subtotal=bill.subtotal,
            tax=bill.tax,
            total=bill.total,
            customer_id=customer_id,
        )
        writes = [(self.orders.table, order_row)]
        if send_to_kitchen:
            if not source:
                source = f"Table {table_label}" if table_label else customer_name
            ticket_row = self.tickets.build_row(
                restaurant_id,
                id=str(uuid4()),
                order_id=order_row["id"],
                source=source,
                items=line_items,
            )
            writes.append((self.tickets.table, ticket_row))

        audit = [
            (self.log.table, self.log.build_row(
                restaurant_id, table, row["id"], None, TicketStatus.NEW.value, actor.id, actor.kind.value,
            ))
            for table, row in writes
        ]
        stored = self.storage.insert_many(writes + audit)
        order = Order.model_validate(stored[0])
        ticket = KitchenTicket.model_validate(stored[1]) if send_to_kitchen else None

        logger.info("Order %s submitted (%d items, total %.2f)", order.id, len(line_items), order.total)
        return order, ticket

    def _mirror(self, machine: StatusMachine, restaurant_id: str, record, target: TicketStatus, actor: Actor):
        if record is None or not can_transition(record.status, target):
            return None
        try:
            return machine.transition(restaurant_id, record.id, target, actor)
        except (InvalidTransition, AuthorizationError) as e:
            logger.warning("Could not mirror %s onto %s %s: %s", target.value, machine.repository.table,
                           record.id, e.message)
            return None

    def advance_ticket(self, restaurant_id: str, ticket_id: str, target, actor: Actor) -> KitchenTicket:
        """Move a kitchen ticket forward; the linked order follows."""
        ticket = self.ticket_machine.transition(restaurant_id, ticket_id, target, actor)
        if ticket.order_id:
            order = self.orders.get(restaurant_id, ticket.order_id)
            self._mirror(self._order_mirror, restaurant_id, order, ticket.status, actor)
        return ticket

    def advance_order(self, restaurant_id: str, order_id: str, target, actor: Actor,
                      extra_patch: Optional[Dict[str, Any]] = None) -> Order:
        """Move an order; its kitchen ticket follows."""
        order = self.order_machine.transition(restaurant_id, order_id, target, actor, extra_patch)
        ticket = self.tickets.get_for_order(restaurant_id, order_id)
        self._mirror(self._ticket_mirror, restaurant_id, ticket, order.status, actor)
        return order

    def cancel_order(self, restaurant_id: str, order_id: str, actor: Actor) -> Order:
        return self.advance_order(restaurant_id, order_id, TicketStatus.CANCELLED, actor)

    def update_items(self, restaurant_id: str, order_id: str, items: Iterable[Dict[str, Any]], actor: Actor) -> Order:
        """
        Replace the order's items. Only allowed while the order is new and has
        not been sent to the kitchen.
        """
        order = self.get_order(restaurant_id, order_id)
        if order.status != TicketStatus.NEW:
            raise ConflictError("Only new orders can be edited", {"status": order.status.value})
        if self.tickets.get_for_order(restaurant_id, order_id) is not None:
            raise ConflictError("Order has already been sent to the kitchen")

        line_items = self._resolve_lines(restaurant_id, items)
        bill = compose_bill(line_items, self.tax_rate)
        updated = self.orders.update(restaurant_id, order_id, {
            "items": line_items,
            "subtotal": bill.subtotal,
            "tax": bill.tax,
            "total": bill.total,
        })
        if updated is None:
            raise NotFoundError(f"Order {order_id} not found")
        logger.info("Order %s items replaced by %s", order_id, actor.kind.value)
        return updated
