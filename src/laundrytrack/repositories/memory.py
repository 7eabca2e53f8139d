"""In-process stores used by the ``memory`` backend and by the tests.

They behave like the PostgreSQL repositories: orders are kept in their
persisted record shape, every mutation is written to the audit log, and each
committed change is fanned out to subscribers in commit order.
"""
from __future__ import annotations

import asyncio
import copy
import itertools
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

from ..domain import (
    AuditLogEntry,
    ChangeEvent,
    Order,
    OrderStatus,
    Role,
    RoleAssignment,
    UserProfile,
    utcnow,
)
from ..errors import ConflictError, NotFoundError, PersistenceError
from ..records import OrderRecord, from_record, parse_ts, to_record


class InMemoryAuditRepository:
    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []
        self._ids = itertools.count(1)

    def record(
        self,
        *,
        table_name: str,
        record_id: str,
        action: str,
        old_data: Optional[dict[str, Any]],
        new_data: Optional[dict[str, Any]],
        user_id: Optional[str],
    ) -> None:
        self._entries.append(
            AuditLogEntry(
                id=next(self._ids),
                table_name=table_name,
                record_id=record_id,
                action=action,
                old_data=copy.deepcopy(old_data),
                new_data=copy.deepcopy(new_data),
                user_id=user_id,
                created_at=utcnow(),
            )
        )

    async def list_entries(
        self,
        *,
        table_name: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        rows = [
            e
            for e in reversed(self._entries)
            if (table_name is None or e.table_name == table_name)
            and (action is None or e.action == action)
        ]
        return rows[:limit]


class InMemoryOrderRepository:
    def __init__(self, audit: Optional[InMemoryAuditRepository] = None) -> None:
        # insertion order == created_at order for orders created here
        self._rows: dict[str, OrderRecord] = {}
        self._subscribers: list[asyncio.Queue[ChangeEvent]] = []
        self.audit = audit
        # set to an exception to simulate a storage outage
        self.fail_with: Optional[Exception] = None

    def _check_available(self) -> None:
        if self.fail_with is not None:
            raise PersistenceError(str(self.fail_with)) from self.fail_with

    def _publish(self, event: ChangeEvent) -> None:
        for q in list(self._subscribers):
            q.put_nowait(event)

    def _audit(self, action: str, order_id: str, old, new, actor_id: Optional[str]) -> None:
        if self.audit is not None:
            self.audit.record(
                table_name="orders",
                record_id=order_id,
                action=action,
                old_data=old,
                new_data=new,
                user_id=actor_id,
            )

    async def insert(self, order: Order, *, actor_id: Optional[str] = None) -> Order:
        self._check_available()
        if order.order_id in self._rows:
            raise PersistenceError(f"Order {order.order_id} already exists.")

        row = to_record(order)
        self._rows[order.order_id] = row
        saved = from_record(row)
        self._audit("INSERT", order.order_id, None, row, actor_id)
        self._publish(ChangeEvent("insert", saved.order_id, saved))
        return saved

    async def update(
        self,
        order: Order,
        *,
        expected_status: Optional[OrderStatus] = None,
        actor_id: Optional[str] = None,
    ) -> Order:
        self._check_available()
        old = self._rows.get(order.order_id)
        if old is None:
            raise NotFoundError(f"Order {order.order_id} not found.")
        if expected_status is not None and old["status"] != expected_status:
            raise ConflictError(order.order_id, expected_status, old["status"])

        new = to_record(order)
        row: OrderRecord = {**old, "status": new["status"], "timestamps": new["timestamps"]}
        self._rows[order.order_id] = row
        saved = from_record(row)
        self._audit("UPDATE", order.order_id, old, row, actor_id)
        self._publish(ChangeEvent("update", saved.order_id, saved))
        return saved

    async def delete(self, order_id: str, *, actor_id: Optional[str] = None) -> None:
        self._check_available()
        old = self._rows.pop(order_id.strip().upper(), None)
        if old is None:
            raise NotFoundError(f"Order {order_id} not found.")
        self._audit("DELETE", old["order_id"], old, None, actor_id)
        self._publish(ChangeEvent("delete", old["order_id"]))

    async def get(self, order_id: str) -> Optional[Order]:
        self._check_available()
        row = self._rows.get(order_id.strip().upper())
        return from_record(row) if row is not None else None

    async def list_all(self) -> list[Order]:
        self._check_available()
        rows = sorted(self._rows.values(), key=lambda r: parse_ts(r["created_at"]), reverse=True)
        return [from_record(r) for r in rows]

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        q: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._subscribers.append(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._subscribers.remove(q)


class InMemoryRoleRepository:
    def __init__(
        self,
        *,
        profiles: Iterable[UserProfile] = (),
        assignments: Iterable[tuple[str, Role]] = (),
        audit: Optional[InMemoryAuditRepository] = None,
    ) -> None:
        self._profiles: dict[str, UserProfile] = {p.user_id: p for p in profiles}
        self._assignments: list[RoleAssignment] = [
            RoleAssignment(user_id=u, role=r, created_at=utcnow()) for u, r in assignments
        ]
        self.audit = audit

    def add_profile(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile

    def _audit(self, action: str, assignment: RoleAssignment, actor_id: Optional[str]) -> None:
        if self.audit is None:
            return
        data = {
            "user_id": assignment.user_id,
            "role": assignment.role,
            "created_at": assignment.created_at.isoformat(),
        }
        self.audit.record(
            table_name="user_roles",
            record_id=f"{assignment.user_id}:{assignment.role}",
            action=action,
            old_data=data if action == "DELETE" else None,
            new_data=data if action == "INSERT" else None,
            user_id=actor_id,
        )

    async def list_profiles(self) -> list[UserProfile]:
        return sorted(self._profiles.values(), key=lambda p: p.created_at)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    async def roles_for(self, user_id: str) -> list[Role]:
        return [a.role for a in self._assignments if a.user_id == user_id]

    async def list_assignments(self) -> list[tuple[str, Role]]:
        return [(a.user_id, a.role) for a in self._assignments]

    async def add(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        if any(a.user_id == user_id and a.role == role for a in self._assignments):
            return False
        assignment = RoleAssignment(user_id=user_id, role=role, created_at=utcnow())
        self._assignments.append(assignment)
        self._audit("INSERT", assignment, actor_id)
        return True

    async def remove(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        for a in self._assignments:
            if a.user_id == user_id and a.role == role:
                self._assignments.remove(a)
                self._audit("DELETE", a, actor_id)
                return True
        return False


def profile(user_id: str, full_name: Optional[str] = None, email: Optional[str] = None,
            created_at: Optional[datetime] = None) -> UserProfile:
    return UserProfile(
        user_id=user_id,
        full_name=full_name,
        email=email,
        created_at=created_at or utcnow(),
    )
