"""Customer loyalty: tiers and points accrual on paid orders."""

from typing import Optional

from hospitality.billing import from_paise, to_paise

RUPEES_PER_POINT = 100

# (tier, minimum spent exclusive, minimum visits exclusive), best tier first
TIERS = (
    ("Diamond", 20000, 15),
    ("Platinum", 10000, 10),
    ("Gold", 5000, 8),
    ("Silver", 2500, 5),
)


def loyalty_tier(total_spent: float, visit_count: int) -> str:
    for tier, spent, visits in TIERS:
        if total_spent > spent and visit_count > visits:
            return tier
    if total_spent > 1000 or visit_count > 3:
        return "Bronze"
    return "None"


def points_for(total: float) -> int:
    """One point per full 100 rupees of the bill total."""
    if total <= 0:
        return 0
    return to_paise(total) // (RUPEES_PER_POINT * 100)


def visit_patch(customer: dict, order_total: float, visited_at: str) -> dict:
    """Customer columns to update after a paid visit."""
    total_spent = to_paise(customer.get("total_spent") or 0) + to_paise(order_total)
    visit_count = int(customer.get("visit_count") or 0) + 1
    return {
        "total_spent": from_paise(total_spent),
        "visit_count": visit_count,
        "average_order_value": round(from_paise(total_spent) / visit_count, 2),
        "last_visit_date": visited_at,
    }


def tier_for_customer(customer: Optional[dict]) -> str:
    if not customer:
        return "None"
    return loyalty_tier(customer.get("total_spent") or 0, customer.get("visit_count") or 0)
