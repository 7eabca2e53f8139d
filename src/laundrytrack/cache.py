from __future__ import annotations

import logging
from typing import Iterable, Optional

from .domain import ChangeEvent, Order

logger = logging.getLogger(__name__)


class OrderCache:
    """Local copy of the order collection, newest first.

    Only ``replace_all`` (a full refetch) and ``apply`` (one change event)
    modify it. Entries are never re-sorted; the fetch order of the store is
    kept and new orders go to the front.
    """

    def __init__(self) -> None:
        self._orders: list[Order] = []

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return isinstance(order_id, str) and self._index(order_id) is not None

    def _index(self, order_id: str) -> Optional[int]:
        key = order_id.strip().upper()
        for i, o in enumerate(self._orders):
            if o.order_id.upper() == key:
                return i
        return None

    def replace_all(self, orders: Iterable[Order]) -> None:
        self._orders = list(orders)

    def apply(self, event: ChangeEvent) -> None:
        i = self._index(event.order_id)

        if event.kind == "delete":
            if i is not None:
                del self._orders[i]
            return

        if event.order is None:
            logger.warning("Ignoring %s event without data for %s", event.kind, event.order_id)
            return

        if i is not None:
            current = self._orders[i]
            # history only grows; a shorter one is a late echo of an older write
            if len(event.order.status_history) < len(current.status_history):
                logger.debug("Skipping stale %s event for %s", event.kind, event.order_id)
                return
            self._orders[i] = event.order
        else:
            if event.kind == "update":
                logger.debug("Update for unknown order %s treated as insert", event.order_id)
            self._orders.insert(0, event.order)

    def get(self, order_id: str) -> Optional[Order]:
        i = self._index(order_id)
        return self._orders[i] if i is not None else None

    def snapshot(self) -> list[Order]:
        return list(self._orders)
