from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from ..cache import OrderCache
from ..domain import (
    INITIAL_STATUS,
    STATUS_ORDER,
    ChangeEvent,
    Order,
    OrderStatus,
    StatusEntry,
    can_transition,
    is_status,
    utcnow,
)
from ..errors import ConflictError, DeliveryError, InvalidTransitionError, NotFoundError, ValidationError
from ..ids import OrderIdGenerator
from ..propagation import OrderStore
from ..validation import validate_lookup_id, validate_order_input
from .access import Actor, require

logger = logging.getLogger(__name__)

StatusListener = Callable[[Order], Awaitable[object]]


class OrderService:
    """Owns the order lifecycle: creation, status advances and deletion.

    The store is the source of truth. ``cache`` mirrors it and is changed only
    through ``apply_event`` (own writes and the store's change feed) or
    ``refresh``; a failed write leaves it untouched.
    """

    def __init__(
        self,
        *,
        store: OrderStore,
        id_generator: Optional[OrderIdGenerator] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.id_generator = id_generator or OrderIdGenerator()
        self.clock = clock
        self.cache = OrderCache()
        self._listeners: list[StatusListener] = []

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    async def refresh(self) -> list[Order]:
        orders = await self.store.list_all()
        self.cache.replace_all(orders)
        return orders

    def apply_event(self, event: ChangeEvent) -> None:
        self.cache.apply(event)

    async def watch(self) -> None:
        """Consume the store's change feed until cancelled."""
        async for event in self.store.subscribe():
            logger.debug("Change event %s %s", event.kind, event.order_id)
            self.apply_event(event)

    async def create_order(
        self,
        actor: Optional[Actor],
        *,
        customer_name: object,
        phone: object,
        items: object,
    ) -> Order:
        actor = require(actor, "create_order")
        data = validate_order_input(customer_name, phone, items)

        now = self.clock()
        order = Order(
            order_id=self.id_generator.generate(),
            customer_name=data.customer_name,
            phone=data.phone,
            items=data.items,
            status=INITIAL_STATUS,
            status_history=(StatusEntry(INITIAL_STATUS, now),),
            created_at=now,
        )
        saved = await self.store.insert(order, actor_id=actor.user_id)
        self.apply_event(ChangeEvent("insert", saved.order_id, saved))
        logger.info("Order %s created by %s (%d items)", saved.order_id, actor.user_id, saved.items)
        return saved

    async def advance_status(
        self,
        actor: Optional[Actor],
        order_id: str,
        target: object,
        *,
        expected_status: Optional[OrderStatus] = None,
    ) -> Order:
        actor = require(actor, "advance_order")
        if not is_status(target):
            raise ValidationError({"status": f"Status must be one of: {', '.join(STATUS_ORDER)}"})
        if expected_status is not None and not is_status(expected_status):
            raise ValidationError({"expected_status": "Invalid status"})

        current = await self.store.get(order_id)
        if current is None:
            raise NotFoundError(f"Order {order_id} not found.")
        if expected_status is not None and current.status != expected_status:
            raise ConflictError(current.order_id, expected_status, current.status)
        if not can_transition(current.status, target):
            raise InvalidTransitionError(current.order_id, current.status, target)

        updated = current.advanced_to(target, self.clock())
        # with expected_status the store refuses to overwrite a newer status
        saved = await self.store.update(updated, expected_status=expected_status, actor_id=actor.user_id)
        self.apply_event(ChangeEvent("update", saved.order_id, saved))
        logger.info("Order %s advanced %s -> %s by %s", saved.order_id, current.status, target, actor.user_id)

        await self._notify_listeners(saved)
        return saved

    async def _notify_listeners(self, order: Order) -> None:
        for listener in self._listeners:
            try:
                await listener(order)
            except DeliveryError as e:
                # the status change stands; delivery problems only get reported
                logger.warning("Notification for order %s failed: %s", order.order_id, e)
            except Exception:
                logger.exception("Status listener failed for order %s", order.order_id)

    async def delete_order(self, actor: Optional[Actor], order_id: str) -> None:
        actor = require(actor, "delete_order")
        await self.store.delete(order_id, actor_id=actor.user_id)
        self.apply_event(ChangeEvent("delete", order_id.strip().upper()))
        logger.info("Order %s deleted by %s", order_id, actor.user_id)

    def find_by_id(self, order_id: str) -> Optional[Order]:
        return self.cache.get(order_id)

    async def get_order(self, order_id: str) -> Order:
        """Current state from the store; the cache is brought in line with it."""
        order = await self.store.get(order_id)
        if order is None:
            self.apply_event(ChangeEvent("delete", order_id.strip().upper()))
            raise NotFoundError(f"Order {order_id} not found.")
        self.apply_event(ChangeEvent("update", order.order_id, order))
        return order

    async def lookup(self, order_id: object) -> Order:
        """Public tracker lookup by a typed or scanned id."""
        cleaned = validate_lookup_id(order_id)
        order = await self.store.get(cleaned)
        if order is None:
            logger.info("Lookup miss for %s", cleaned)
            raise NotFoundError(f"Order {cleaned} not found.")
        return order

    def filter_by_status(self, status: str = "all") -> list[Order]:
        orders = self.cache.snapshot()
        if status == "all":
            return orders
        if not is_status(status):
            raise ValidationError({"status": f"Unknown status filter: {status}"})
        return [o for o in orders if o.status == status]
