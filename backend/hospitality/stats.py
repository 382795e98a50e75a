"""View-level aggregates derived from the current record list."""

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from hospitality.billing import from_paise, to_paise
from hospitality.schemas import TicketStatus, normalize_line_items

PENDING = frozenset({TicketStatus.NEW.value, TicketStatus.PREPARING.value, TicketStatus.READY.value})


@dataclass(frozen=True)
class OrderStats:
    total: int = 0
    pending: int = 0
    completed: int = 0
    revenue: float = 0.0  # tax-exclusive

    def to_dict(self) -> dict:
        return asdict(self)


def _field(record: Any, name: str, default=None):
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def _status(record: Any) -> str:
    status = _field(record, "status")
    return status.value if isinstance(status, TicketStatus) else str(status)


def _subtotal_paise(record: Any) -> int:
    subtotal = _field(record, "subtotal")
    if subtotal is not None:
        return to_paise(subtotal)
    # Tickets carry no totals; price them from their line items
    items, _ = normalize_line_items(_field(record, "items", []))
    return sum(item["quantity"] * to_paise(item["unit_price"]) for item in items)


def compute_stats(records: Iterable[Any]) -> OrderStats:
    """
    Count records by lifecycle bucket and sum revenue of completed ones.

    Accepts Order/KitchenTicket records or raw row dicts.
    """
    total = pending = completed = 0
    revenue = 0
    for record in records:
        total += 1
        status = _status(record)
        if status in PENDING:
            pending += 1
        elif status == TicketStatus.COMPLETED.value:
            completed += 1
            revenue += _subtotal_paise(record)
    return OrderStats(total, pending, completed, from_paise(revenue))
