"""Tests for bill composition, receipts and derived stats."""

from datetime import timedelta, timezone

import pytest

from hospitality.billing import compose_bill, render_receipt, to_paise
from hospitality.errors import ValidationError
from hospitality.schemas import Order, normalize_line_items
from hospitality.stats import compute_stats
from hospitality.utils import time_utils


def test_pizza_scenario():
    bill = compose_bill([{"name": "Pizza", "quantity": 2, "unit_price": 250}], tax_rate=0.10)

    assert bill.subtotal == 500.0
    assert bill.tax == 50.0
    assert bill.total == 550.0


def test_tax_rounds_half_up_to_the_paisa():
    # 0.05 * 0.10 = 0.005 -> 0.01
    bill = compose_bill([{"name": "Mint", "quantity": 1, "unit_price": 0.05}], tax_rate=0.10)
    assert bill.tax_paise == 1
    assert bill.total == 0.06

    # 199.99 * 3 = 599.97, tax 59.997 -> 60.00
    bill = compose_bill([{"name": "Pasta", "quantity": 3, "unit_price": 199.99}], tax_rate=0.10)
    assert bill.subtotal == 599.97
    assert bill.tax == 60.0
    assert bill.total == 659.97


def test_float_prices_do_not_drift():
    items = [{"name": "Chai", "quantity": 1, "unit_price": 0.1}] * 3
    assert compose_bill(items, tax_rate=0).subtotal == 0.3
    assert to_paise(0.1) + to_paise(0.2) == to_paise(0.3)


def test_item_order_does_not_change_bill():
    items = [
        {"name": "Pizza", "quantity": 2, "unit_price": 250},
        {"name": "Coke", "quantity": 3, "unit_price": 59.5},
        {"name": "Pasta", "quantity": 1, "unit_price": 199.99},
    ]
    forward = compose_bill(items, tax_rate=0.18)
    backward = compose_bill(list(reversed(items)), tax_rate=0.18)
    assert (forward.subtotal_paise, forward.tax_paise, forward.total_paise) == (
        backward.subtotal_paise, backward.tax_paise, backward.total_paise,
    )


def test_empty_and_malformed_items():
    assert compose_bill([], tax_rate=0.1).total == 0.0
    assert compose_bill(None, tax_rate=0.1).total == 0.0
    # Missing price counts as zero, missing quantity as one
    bill = compose_bill([{"name": "Water"}, {"name": "Naan", "unit_price": 40}], tax_rate=0)
    assert bill.subtotal == 40.0


def test_non_finite_and_oversized_values_are_corrected():
    items, corrections = normalize_line_items([
        {"name": "Rice", "quantity": float("inf"), "unit_price": 80},
        {"name": "Dal", "quantity": 10 ** 400, "unit_price": float("nan")},
        {"name": "Roti", "quantity": 2, "unit_price": float("inf")},
        {"name": "Lassi", "quantity": "3", "unit_price": 10 ** 400},
    ])

    assert [(i["name"], i["quantity"], i["unit_price"]) for i in items] == [
        ("Rice", 1, 80.0), ("Dal", 1, 0.0), ("Roti", 2, 0.0), ("Lassi", 3, 0.0),
    ]
    assert corrections == 5
    assert compose_bill(items, tax_rate=0.1).subtotal == 80.0


def test_negative_tax_rate_is_rejected():
    with pytest.raises(ValidationError):
        compose_bill([{"name": "Pizza", "quantity": 1, "unit_price": 250}], tax_rate=-0.1)


def test_render_receipt():
    bill = compose_bill([
        {"name": "Pizza", "quantity": 2, "unit_price": 250, "notes": ["extra cheese"]},
    ], tax_rate=0.10)
    text = render_receipt(bill, restaurant_name="Test Bistro", order_id="abcdef123456",
                          source="Table 4", payment_method="upi", currency="Rs ")

    assert "Test Bistro" in text
    assert "Order: abcdef12" in text
    assert "2 x Pizza" in text
    assert "- extra cheese" in text
    assert "Subtotal" in text and "Rs 500.00" in text
    assert "Tax (10%)" in text and "Rs 50.00" in text
    assert "Total" in text and "Rs 550.00" in text
    assert "Paid by UPI" in text
    assert all(len(line) <= 40 for line in text.splitlines())


def test_receipt_shows_payment_time_in_restaurant_timezone(monkeypatch):
    monkeypatch.setattr(time_utils, "LOCAL_TZ", timezone(timedelta(hours=5, minutes=30)))
    bill = compose_bill([{"name": "Chai", "quantity": 1, "unit_price": 20}], tax_rate=0)

    text = render_receipt(bill, paid_at="2026-10-19T10:00:00.000000Z")
    assert "Paid: 19 Oct 2026 15:30" in text

    # Offsets written by other clients are honoured too
    text = render_receipt(bill, paid_at="2026-10-19T20:15:00+00:00")
    assert "Paid: 20 Oct 2026 01:45" in text


# ---------- stats ----------

def _order(status, subtotal, tax=0.0):
    return Order(id=f"o-{status}-{subtotal}", restaurant_id="r1", status=status,
                 subtotal=subtotal, tax=tax, total=subtotal + tax)


def test_stats_empty_collection_is_all_zero():
    stats = compute_stats([])
    assert stats.to_dict() == {"total": 0, "pending": 0, "completed": 0, "revenue": 0.0}


def test_stats_counts_and_tax_exclusive_revenue():
    records = [
        _order("new", 100),
        _order("preparing", 120),
        _order("ready", 80),
        _order("completed", 500, tax=50),
        _order("completed", 199.99, tax=20),
        _order("cancelled", 300),
    ]
    stats = compute_stats(records)

    assert stats.total == 6
    assert stats.pending == 3
    assert stats.completed == 2
    assert stats.revenue == 699.99


def test_stats_accepts_rows_and_prices_tickets_from_items():
    rows = [
        {"id": "t1", "status": "completed", "items": [{"name": "Pizza", "quantity": 2, "unit_price": 250}]},
        {"id": "t2", "status": "ready", "items": []},
    ]
    stats = compute_stats(rows)
    assert (stats.total, stats.pending, stats.completed, stats.revenue) == (2, 1, 1, 500.0)
