import asyncio

import pytest

from laundrytrack.config import NotificationConfig
from laundrytrack.domain import STATUS_ORDER
from laundrytrack.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DeliveryError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from laundrytrack.services.notification_service import NotificationService
from laundrytrack.services.order_service import OrderService


async def _create(service, actor, name="Jane Doe", phone="+1-555-0100", items=4):
    return await service.create_order(actor, customer_name=name, phone=phone, items=items)


@pytest.mark.asyncio
async def test_create_order(order_service, order_store, staff):
    order = await _create(order_service, staff)

    assert order.status == "received"
    assert order.items == 4
    assert len(order.status_history) == 1
    assert order.status_history[0].status == "received"
    assert order.status_history[0].timestamp == order.created_at
    assert order_service.id_generator.pattern.match(order.order_id)
    assert await order_store.get(order.order_id) == order
    assert order_service.find_by_id(order.order_id) == order


@pytest.mark.asyncio
async def test_create_rejects_invalid_input_without_writing(order_service, order_store, staff):
    with pytest.raises(ValidationError) as exc:
        await _create(order_service, staff, name="", phone="12", items=1001)
    assert set(exc.value.errors) == {"customer_name", "phone", "items"}
    assert await order_store.list_all() == []
    assert len(order_service.cache) == 0


@pytest.mark.asyncio
async def test_create_requires_staff_role(order_service, guest):
    with pytest.raises(AuthorizationError):
        await _create(order_service, guest)
    with pytest.raises(AuthenticationError):
        await _create(order_service, None)


@pytest.mark.asyncio
async def test_full_lifecycle(order_service, staff):
    order = await _create(order_service, staff)
    for target in ("washing", "ironing", "ready", "delivered"):
        order = await order_service.advance_status(staff, order.order_id, target)
        assert order.status == target
        assert order.status_history[-1].status == target

    assert [e.status for e in order.status_history] == list(STATUS_ORDER)
    stamps = [e.timestamp for e in order.status_history]
    assert stamps == sorted(stamps)

    with pytest.raises(InvalidTransitionError):
        await order_service.advance_status(staff, order.order_id, "ready")


@pytest.mark.asyncio
async def test_advance_may_skip_ahead(order_service, staff):
    order = await _create(order_service, staff)
    order = await order_service.advance_status(staff, order.order_id, "ready")
    assert [e.status for e in order.status_history] == ["received", "ready"]


@pytest.mark.asyncio
@pytest.mark.parametrize("target", ["washing", "ironing"])
async def test_backwards_or_repeated_advance_rejected(order_service, order_store, staff, target):
    order = await _create(order_service, staff)
    order = await order_service.advance_status(staff, order.order_id, "washing")
    order = await order_service.advance_status(staff, order.order_id, "ironing")

    with pytest.raises(InvalidTransitionError):
        await order_service.advance_status(staff, order.order_id, target)
    assert await order_store.get(order.order_id) == order
    assert order_service.find_by_id(order.order_id) == order


@pytest.mark.asyncio
async def test_advance_unknown_status(order_service, staff):
    order = await _create(order_service, staff)
    with pytest.raises(ValidationError):
        await order_service.advance_status(staff, order.order_id, "folded")


@pytest.mark.asyncio
async def test_advance_missing_order(order_service, staff):
    with pytest.raises(NotFoundError):
        await order_service.advance_status(staff, "LD-00000000-0000", "washing")


@pytest.mark.asyncio
async def test_advance_with_stale_expected_status_conflicts(order_service, staff):
    order = await _create(order_service, staff)
    await order_service.advance_status(staff, order.order_id, "washing")

    with pytest.raises(ConflictError) as exc:
        await order_service.advance_status(staff, order.order_id, "ironing", expected_status="received")
    assert exc.value.actual == "washing"

    done = await order_service.advance_status(staff, order.order_id, "ironing", expected_status="washing")
    assert done.status == "ironing"


@pytest.mark.asyncio
async def test_store_compare_and_set_guards_race(order_service, order_store, staff):
    order = await _create(order_service, staff)
    stale = order.advanced_to("washing", order.created_at)
    await order_service.advance_status(staff, order.order_id, "washing")

    with pytest.raises(ConflictError):
        await order_store.update(stale.advanced_to("ironing", order.created_at), expected_status="received")


@pytest.mark.asyncio
async def test_find_by_id_case_insensitive(order_service, staff):
    order = await _create(order_service, staff)
    assert order_service.find_by_id(order.order_id.lower()) == order
    assert order_service.find_by_id("LD-00000000-0000") is None


@pytest.mark.asyncio
async def test_lookup_normalises_and_checks_shape(order_service, staff):
    order = await _create(order_service, staff)
    assert await order_service.lookup(f"  {order.order_id.lower()} ") == order
    with pytest.raises(ValidationError):
        await order_service.lookup("<bad>")
    with pytest.raises(NotFoundError):
        await order_service.lookup("LD-00000000-0000")


@pytest.mark.asyncio
async def test_filter_by_status_newest_first(order_service, staff):
    first = await _create(order_service, staff, name="First")
    second = await _create(order_service, staff, name="Second")
    third = await _create(order_service, staff, name="Third")
    await order_service.advance_status(staff, second.order_id, "washing")

    assert [o.customer_name for o in order_service.filter_by_status("all")] == ["Third", "Second", "First"]
    assert [o.order_id for o in order_service.filter_by_status("received")] == [
        third.order_id,
        first.order_id,
    ]
    assert [o.order_id for o in order_service.filter_by_status("washing")] == [second.order_id]
    assert order_service.filter_by_status("delivered") == []
    with pytest.raises(ValidationError):
        order_service.filter_by_status("lost")


@pytest.mark.asyncio
async def test_refresh_uses_store_order(order_service, order_store, staff):
    await _create(order_service, staff, name="First")
    await _create(order_service, staff, name="Second")
    order_service.cache.replace_all([])

    await order_service.refresh()
    assert [o.customer_name for o in order_service.filter_by_status()] == ["Second", "First"]


@pytest.mark.asyncio
async def test_delete(order_service, order_store, staff):
    order = await _create(order_service, staff)
    await order_service.delete_order(staff, order.order_id)
    assert await order_store.get(order.order_id) is None
    assert order_service.find_by_id(order.order_id) is None

    with pytest.raises(NotFoundError):
        await order_service.delete_order(staff, order.order_id)


@pytest.mark.asyncio
async def test_delete_missing_order(order_service, staff):
    with pytest.raises(NotFoundError):
        await order_service.delete_order(staff, "LD-00000000-0000")


@pytest.mark.asyncio
async def test_persistence_failure_leaves_cache_unchanged(order_service, order_store, staff):
    order = await _create(order_service, staff)
    order_store.fail_with = ConnectionError("network down")

    with pytest.raises(PersistenceError):
        await _create(order_service, staff, name="Other")
    with pytest.raises(PersistenceError):
        await order_service.advance_status(staff, order.order_id, "washing")
    with pytest.raises(PersistenceError):
        await order_service.delete_order(staff, order.order_id)

    assert order_service.filter_by_status() == [order]


@pytest.mark.asyncio
async def test_listener_receives_advanced_order(order_service, staff):
    seen = []

    async def listener(order):
        seen.append((order.order_id, order.status))

    order_service.add_status_listener(listener)
    order = await _create(order_service, staff)
    await order_service.advance_status(staff, order.order_id, "washing")
    assert seen == [(order.order_id, "washing")]


@pytest.mark.asyncio
async def test_delivery_error_does_not_undo_status_change(order_service, order_store, staff, caplog):
    async def failing(order):
        raise DeliveryError("sms gateway down")

    order_service.add_status_listener(failing)
    order = await _create(order_service, staff)
    updated = await order_service.advance_status(staff, order.order_id, "washing")

    assert updated.status == "washing"
    assert (await order_store.get(order.order_id)).status == "washing"
    assert "sms gateway down" in caplog.text


@pytest.mark.asyncio
async def test_notifier_storage_failure_does_not_fail_advance(order_service, order_store, staff, caplog):
    notifier = NotificationService(
        cfg=NotificationConfig(
            enabled=True,
            twilio_account_sid="AC123",
            twilio_auth_token="secret",
            twilio_phone_number="+15550000",
        ),
        store=order_store,
    )

    async def recheck_during_outage(order):
        # the database drops right after the status write
        order_store.fail_with = ConnectionError("connection reset")
        await notifier.notify_status_change(order)

    order_service.add_status_listener(recheck_during_outage)
    order = await _create(order_service, staff)
    updated = await order_service.advance_status(staff, order.order_id, "washing")

    assert updated.status == "washing"
    assert "connection reset" in caplog.text
    order_store.fail_with = None
    assert (await order_store.get(order.order_id)).status == "washing"


@pytest.mark.asyncio
async def test_unexpected_listener_error_is_logged(order_service, staff, caplog):
    async def broken(order):
        raise RuntimeError("template missing")

    order_service.add_status_listener(broken)
    order = await _create(order_service, staff)
    updated = await order_service.advance_status(staff, order.order_id, "washing")

    assert updated.status == "washing"
    assert "Status listener failed" in caplog.text


@pytest.mark.asyncio
async def test_get_order_reads_changes_from_other_clients(order_service, order_store, staff, clock):
    other = OrderService(store=order_store, clock=clock)
    order = await _create(order_service, staff)

    await other.advance_status(staff, order.order_id, "ready")
    fetched = await order_service.get_order(order.order_id)
    assert fetched.status == "ready"
    assert order_service.find_by_id(order.order_id).status == "ready"

    await other.delete_order(staff, order.order_id)
    with pytest.raises(NotFoundError):
        await order_service.get_order(order.order_id)
    assert order_service.find_by_id(order.order_id) is None


@pytest.mark.asyncio
async def test_late_change_events_do_not_roll_back_own_writes(order_service, staff):
    watcher = asyncio.create_task(order_service.watch())
    await asyncio.sleep(0)

    order = await _create(order_service, staff)
    await order_service.advance_status(staff, order.order_id, "washing")
    await order_service.advance_status(staff, order.order_id, "ironing")
    for _ in range(5):
        await asyncio.sleep(0)
    assert order_service.find_by_id(order.order_id).status == "ironing"

    watcher.cancel()
    with pytest.raises(asyncio.CancelledError):
        await watcher


@pytest.mark.asyncio
async def test_watch_applies_changes_from_other_clients(order_service, order_store, staff, clock):
    other = OrderService(store=order_store, clock=clock)
    watcher = asyncio.create_task(order_service.watch())
    await asyncio.sleep(0)

    created = await _create(other, staff)
    await other.advance_status(staff, created.order_id, "washing")
    for _ in range(5):
        await asyncio.sleep(0)
    assert order_service.find_by_id(created.order_id).status == "washing"

    await other.delete_order(staff, created.order_id)
    for _ in range(5):
        await asyncio.sleep(0)
    assert order_service.find_by_id(created.order_id) is None

    watcher.cancel()
    with pytest.raises(asyncio.CancelledError):
        await watcher
