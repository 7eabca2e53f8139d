"""Mapping between the ``Order`` entity and its persisted / wire shapes.

The persisted record uses snake_case keys and ISO-8601 strings::

    {"order_id": "LD-KQJ3F2AB-8X1Z", "customer_name": ..., "phone": ...,
     "items": 4, "status": "washing",
     "timestamps": [{"status": "received", "timestamp": "..."}, ...],
     "created_at": "..."}

API views use camelCase and the public view drops the phone number.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, TypedDict

from .domain import Order, StatusEntry, is_status
from .errors import PersistenceError


class TimestampRecord(TypedDict):
    status: str
    timestamp: str


class OrderRecord(TypedDict):
    order_id: str
    customer_name: str
    phone: str
    items: int
    status: str
    timestamps: list[TimestampRecord]
    created_at: str


def format_ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_record(order: Order) -> OrderRecord:
    return {
        "order_id": order.order_id,
        "customer_name": order.customer_name,
        "phone": order.phone,
        "items": order.items,
        "status": order.status,
        "timestamps": [
            {"status": e.status, "timestamp": format_ts(e.timestamp)} for e in order.status_history
        ],
        "created_at": format_ts(order.created_at),
    }


def from_record(row: Mapping[str, Any]) -> Order:
    """Build an ``Order`` from a stored row; malformed rows raise PersistenceError."""
    try:
        history = tuple(
            StatusEntry(status=t["status"], timestamp=parse_ts(t["timestamp"]))
            for t in row["timestamps"]
        )
        for entry in history:
            if not is_status(entry.status):
                raise ValueError(f"unknown status {entry.status!r}")
        return Order(
            order_id=str(row["order_id"]),
            customer_name=str(row["customer_name"]),
            phone=str(row["phone"]),
            items=int(row["items"]),
            status=row["status"],
            status_history=history,
            created_at=parse_ts(row["created_at"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PersistenceError(f"Malformed order record {row.get('order_id')!r}: {e}") from e


def _timestamps(order: Order) -> list[dict[str, str]]:
    return [{"status": e.status, "timestamp": format_ts(e.timestamp)} for e in order.status_history]


def to_public(order: Order) -> dict[str, Any]:
    return {
        "orderId": order.order_id,
        "customerName": order.customer_name,
        "items": order.items,
        "status": order.status,
        "timestamps": _timestamps(order),
        "createdAt": format_ts(order.created_at),
    }


def to_staff_view(order: Order) -> dict[str, Any]:
    view = to_public(order)
    view["phone"] = order.phone
    return view
