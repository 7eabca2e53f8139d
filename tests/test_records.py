from datetime import datetime, timezone

import pytest

from laundrytrack.domain import Order, StatusEntry
from laundrytrack.errors import PersistenceError
from laundrytrack.records import from_record, to_public, to_record, to_staff_view

CREATED = datetime(2026, 10, 19, 9, 0, 0, 123000, tzinfo=timezone.utc)


@pytest.fixture
def order():
    return Order(
        order_id="LD-KQJ3F2AB-8X1Z",
        customer_name="Jane Doe",
        phone="+1-555-0100",
        items=4,
        status="washing",
        status_history=(
            StatusEntry("received", CREATED),
            StatusEntry("washing", datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc)),
        ),
        created_at=CREATED,
    )


def test_record_shape(order):
    rec = to_record(order)
    assert rec == {
        "order_id": "LD-KQJ3F2AB-8X1Z",
        "customer_name": "Jane Doe",
        "phone": "+1-555-0100",
        "items": 4,
        "status": "washing",
        "timestamps": [
            {"status": "received", "timestamp": "2026-10-19T09:00:00.123Z"},
            {"status": "washing", "timestamp": "2026-10-19T10:30:00.000Z"},
        ],
        "created_at": "2026-10-19T09:00:00.123Z",
    }
    assert from_record(rec) == order


def test_from_database_row_with_datetime_and_offset():
    row = {
        "order_id": "LD-KQJ3F2AB-8X1Z",
        "customer_name": "Jane Doe",
        "phone": "5550100",
        "items": 1,
        "status": "received",
        "timestamps": [{"status": "received", "timestamp": "2026-10-19T09:00:00.123+00:00"}],
        "created_at": CREATED,
    }
    order = from_record(row)
    assert order.created_at == CREATED
    assert order.status_history[0].timestamp == CREATED


@pytest.mark.parametrize(
    "change",
    [
        {"timestamps": []},
        {"status": "ironing"},
        {"timestamps": [{"status": "lost", "timestamp": "2026-10-19T09:00:00Z"}], "status": "lost"},
        {"created_at": "yesterday"},
    ],
)
def test_malformed_rows_raise_persistence_error(order, change):
    rec = {**to_record(order), **change}
    with pytest.raises(PersistenceError):
        from_record(rec)


def test_missing_key_raises_persistence_error(order):
    rec = dict(to_record(order))
    del rec["phone"]
    with pytest.raises(PersistenceError):
        from_record(rec)


def test_public_view_strips_phone(order):
    view = to_public(order)
    assert "phone" not in view
    assert set(view) == {"orderId", "customerName", "items", "status", "timestamps", "createdAt"}
    assert to_staff_view(order)["phone"] == "+1-555-0100"
