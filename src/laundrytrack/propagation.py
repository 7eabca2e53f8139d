"""Contracts of the storage and change-propagation collaborators.

The services only talk to these protocols. ``repositories.memory`` provides
in-process implementations; ``repositories.order_repo`` and friends are the
PostgreSQL ones.
"""
from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from .domain import AuditLogEntry, ChangeEvent, Order, OrderStatus, Role, UserProfile


class OrderStore(Protocol):
    async def insert(self, order: Order, *, actor_id: Optional[str] = None) -> Order:
        """Durably write a new order keyed by ``order_id``."""

    async def update(
        self,
        order: Order,
        *,
        expected_status: Optional[OrderStatus] = None,
        actor_id: Optional[str] = None,
    ) -> Order:
        """Overwrite status and history.

        With ``expected_status`` the write only happens if the stored status
        still equals it (ConflictError otherwise). NotFoundError when missing.
        """

    async def delete(self, order_id: str, *, actor_id: Optional[str] = None) -> None:
        """Remove the order; NotFoundError when missing."""

    async def get(self, order_id: str) -> Optional[Order]: ...

    async def list_all(self) -> list[Order]:
        """Full collection, newest ``created_at`` first."""

    def subscribe(self) -> AsyncIterator[ChangeEvent]:
        """Insert/update/delete events in the order they were committed."""


class RoleStore(Protocol):
    async def list_profiles(self) -> list[UserProfile]: ...

    async def get_profile(self, user_id: str) -> Optional[UserProfile]: ...

    async def roles_for(self, user_id: str) -> list[Role]: ...

    async def list_assignments(self) -> list[tuple[str, Role]]: ...

    async def add(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        """False when the user already holds the role."""

    async def remove(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        """False when there was nothing to remove."""


class AuditStore(Protocol):
    async def list_entries(
        self,
        *,
        table_name: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]: ...
