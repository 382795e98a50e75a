"""
Typed internal records for orders and kitchen tickets.

Rows coming out of storage or the change feed are loosely shaped (item
arrays written by older clients, hand-edited rows). Everything passes
through normalize_line_items() before it becomes a LineItem, so the rest
of the code can rely on the field types below.
"""

import math
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

UNKNOWN_ITEM_NAME = "Unknown item"


class TicketStatus(str, Enum):
    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TicketStatus.COMPLETED, TicketStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({TicketStatus.NEW, TicketStatus.PREPARING, TicketStatus.READY})


class LineItem(BaseModel):
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = 0.0  # captured when the item was added
    notes: List[str] = []
    menu_item_id: Optional[str] = None

    class Config:
        allow_inf_nan = False


def _coerce_quantity(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 1 or number != int(number):
        return None
    return int(number)


def _coerce_price(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = round(float(value), 2)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def normalize_line_items(raw: Any) -> Tuple[List[dict], int]:
    """
    Normalize an untrusted item array.

    Returns (items, corrections) where items are dicts ready for LineItem and
    corrections counts every default that had to be applied. Never raises.
    """
    if raw is None:
        return [], 1
    if not isinstance(raw, (list, tuple)):
        return [], 1

    items = []
    corrections = 0
    for entry in raw:
        if isinstance(entry, BaseModel):
            entry = entry.model_dump()
        if isinstance(entry, str):
            # Legacy rows stored bare item names
            entry = {"name": entry}
            corrections += 1
        elif not isinstance(entry, dict):
            corrections += 1
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            name = UNKNOWN_ITEM_NAME
            corrections += 1

        qty = _coerce_quantity(entry.get("quantity", entry.get("qty")))
        if qty is None:
            qty = 1
            corrections += 1

        price = _coerce_price(entry.get("unit_price", entry.get("price")))
        if price is None:
            price = 0.0
            if "unit_price" in entry or "price" in entry:
                corrections += 1

        notes = entry.get("notes")
        if notes is None:
            notes = []
        elif isinstance(notes, str):
            notes = [notes] if notes.strip() else []
        elif isinstance(notes, (list, tuple)):
            notes = [str(n) for n in notes if n is not None]
        else:
            notes = []
            corrections += 1

        menu_item_id = entry.get("menu_item_id")
        items.append({
            "name": name.strip(),
            "quantity": qty,
            "unit_price": price,
            "notes": notes,
            "menu_item_id": str(menu_item_id) if menu_item_id is not None else None,
        })
    return items, corrections


class _StatusRecord(BaseModel):
    id: str
    restaurant_id: str
    items: List[LineItem] = []
    status: TicketStatus = TicketStatus.NEW
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        allow_inf_nan = False

    @field_validator("items", mode="before")
    @classmethod
    def _normalize_items(cls, value):
        items, _ = normalize_line_items(value)
        return items

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class KitchenTicket(_StatusRecord):
    """Production-facing record shown on the kitchen display."""

    order_id: Optional[str] = None
    source: str = "Walk-in"


class Order(_StatusRecord):
    """Customer-facing record. Totals are always derived from items."""

    customer_name: str = "Guest"
    table_label: Optional[str] = None
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    payment_method: Optional[str] = None
    customer_id: Optional[str] = None
    paid_at: Optional[str] = None


class StatusTransitionRecord(BaseModel):
    id: str
    restaurant_id: str
    record_table: str
    record_id: str
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[str]
    actor_kind: str
    created_at: str
