from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional

from .domain import STATUS_ORDER, Order, utcnow

IN_PROGRESS_EXCLUDED = ("ready", "delivered")


def status_counts(orders: Iterable[Order]) -> dict[str, int]:
    counts = {s: 0 for s in STATUS_ORDER}
    for o in orders:
        counts[o.status] += 1
    return counts


def items_per_status(orders: Iterable[Order]) -> dict[str, int]:
    items = {s: 0 for s in STATUS_ORDER}
    for o in orders:
        items[o.status] += o.items
    return items


def daily_activity(orders: Iterable[Order], days: int = 7, today: Optional[date] = None) -> list[dict]:
    # one row per day, oldest first, ending today (UTC dates)
    today = today or utcnow().date()
    orders = list(orders)
    out = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_orders = [o for o in orders if o.created_at.date() == day]
        out.append(
            {
                "date": day.isoformat(),
                "orders": len(day_orders),
                "items": sum(o.items for o in day_orders),
            }
        )
    return out


def summary(orders: Iterable[Order], today: Optional[date] = None) -> dict:
    today = today or utcnow().date()
    orders = list(orders)
    total_items = sum(o.items for o in orders)
    return {
        "total_orders": len(orders),
        "total_items": total_items,
        "avg_items_per_order": round(total_items / len(orders), 1) if orders else 0.0,
        "in_progress": sum(1 for o in orders if o.status not in IN_PROGRESS_EXCLUDED),
        "created_today": sum(1 for o in orders if o.created_at.date() == today),
    }
