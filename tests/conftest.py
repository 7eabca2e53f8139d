from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from laundrytrack.ids import OrderIdGenerator
from laundrytrack.repositories.memory import (
    InMemoryAuditRepository,
    InMemoryOrderRepository,
    InMemoryRoleRepository,
    profile,
)
from laundrytrack.services.access import Actor
from laundrytrack.services.audit_service import AuditService
from laundrytrack.services.order_service import OrderService
from laundrytrack.services.role_service import RoleService

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Returns T0, T0+1s, T0+2s, ... on successive calls."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def audit_store():
    return InMemoryAuditRepository()


@pytest.fixture
def order_store(audit_store):
    return InMemoryOrderRepository(audit=audit_store)


@pytest.fixture
def role_store(audit_store):
    return InMemoryRoleRepository(
        profiles=[
            profile("admin-1", "Ada Admin", "ada@example.com", T0),
            profile("staff-1", "Sam Staff", "sam@example.com", T0 + timedelta(minutes=1)),
            profile("guest-1", "Gus Guest", None, T0 + timedelta(minutes=2)),
        ],
        assignments=[("admin-1", "admin"), ("staff-1", "staff")],
        audit=audit_store,
    )


@pytest.fixture
def admin():
    return Actor.with_roles("admin-1", ["admin"])


@pytest.fixture
def staff():
    return Actor.with_roles("staff-1", ["staff"])


@pytest.fixture
def guest():
    return Actor.with_roles("guest-1", [])


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def order_service(order_store, clock):
    return OrderService(store=order_store, id_generator=OrderIdGenerator("LD"), clock=clock)


@pytest.fixture
def role_service(role_store):
    return RoleService(store=role_store)


@pytest.fixture
def audit_service(audit_store, role_store):
    return AuditService(store=audit_store, roles=role_store)
