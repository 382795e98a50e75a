"""
Bill composition and receipt rendering.

Money is handled in integer paise throughout; floats only appear at the
edges (stored rows, JSON responses) and are always rounded to 2 dp.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from hospitality import config
from hospitality.errors import ValidationError
from hospitality.schemas import LineItem, normalize_line_items
from hospitality.utils.time_utils import parse_iso, to_local

PAISE_PER_RUPEE = 100


def to_paise(amount) -> int:
    """Rupees (float/str/Decimal) -> integer paise, half-up."""
    return int((Decimal(str(amount)) * PAISE_PER_RUPEE).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_paise(paise: int) -> float:
    return float(Decimal(paise) / PAISE_PER_RUPEE)


def line_total_paise(item: LineItem) -> int:
    return item.quantity * to_paise(item.unit_price)


@dataclass(frozen=True)
class Bill:
    items: List[LineItem] = field(default_factory=list)
    subtotal_paise: int = 0
    tax_paise: int = 0
    total_paise: int = 0
    tax_rate: float = 0.0

    @property
    def subtotal(self) -> float:
        return from_paise(self.subtotal_paise)

    @property
    def tax(self) -> float:
        return from_paise(self.tax_paise)

    @property
    def total(self) -> float:
        return from_paise(self.total_paise)

    def to_dict(self) -> dict:
        return {
            "items": [
                {**item.model_dump(), "line_total": from_paise(line_total_paise(item))}
                for item in self.items
            ],
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "tax_rate": self.tax_rate,
        }


def compose_bill(items: Iterable, tax_rate: Optional[float] = None) -> Bill:
    """
    Compute subtotal, tax and total for a list of line items.

    subtotal = sum(quantity x unit_price); tax = subtotal x rate rounded
    half-up to the paisa; total = subtotal + tax. Item order does not matter.
    """
    rate = config.TAX_RATE if tax_rate is None else tax_rate
    if rate < 0:
        raise ValidationError("Tax rate cannot be negative", {"tax_rate": rate})

    normalized, _ = normalize_line_items(list(items) if items is not None else [])
    line_items = [LineItem(**item) for item in normalized]

    subtotal = sum(line_total_paise(item) for item in line_items)
    tax = int((Decimal(subtotal) * Decimal(str(rate))).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return Bill(line_items, subtotal, tax, subtotal + tax, rate)


def format_money(amount: float, currency: Optional[str] = None) -> str:
    symbol = config.CURRENCY_SYMBOL if currency is None else currency
    return f"{symbol}{amount:,.2f}"


def render_receipt(
    bill: Bill,
    restaurant_name: Optional[str] = None,
    order_id: Optional[str] = None,
    source: Optional[str] = None,
    payment_method: Optional[str] = None,
    paid_at: Optional[str] = None,
    currency: Optional[str] = None,
    width: int = 40,
) -> str:
    """Plain-text receipt suitable for a thermal printer or a <pre> block."""
    lines = []
    if restaurant_name:
        lines.append(restaurant_name.center(width).rstrip())
    if order_id:
        lines.append(f"Order: {order_id[:8]}")
    if source:
        lines.append(f"For: {source}")
    if paid_at:
        lines.append(f"Paid: {to_local(parse_iso(paid_at)):%d %b %Y %H:%M}")
    lines.append("-" * width)

    for item in bill.items:
        amount = format_money(from_paise(line_total_paise(item)), currency)
        label = f"{item.quantity} x {item.name}"
        room = width - len(amount) - 1
        if len(label) > room:
            label = label[: max(room - 1, 0)] + "…"
        lines.append(f"{label.ljust(room)} {amount}")
        for note in item.notes:
            lines.append(f"    - {note}")

    lines.append("-" * width)
    rate_pct = f"{Decimal(str(bill.tax_rate)) * 100:.2f}".rstrip("0").rstrip(".")
    for label, amount in (
        ("Subtotal", bill.subtotal),
        (f"Tax ({rate_pct}%)", bill.tax),
        ("Total", bill.total),
    ):
        value = format_money(amount, currency)
        lines.append(f"{label}{value.rjust(width - len(label))}")
    if payment_method:
        lines.append(f"Paid by {payment_method.upper()}")
    return "\n".join(lines) + "\n"
