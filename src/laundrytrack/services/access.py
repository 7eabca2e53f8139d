from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional

from ..domain import ROLES, Role
from ..errors import AuthenticationError, AuthorizationError

Capability = Literal[
    "view_orders",
    "create_order",
    "advance_order",
    "delete_order",
    "send_notification",
    "manage_roles",
    "view_audit_logs",
]

_STAFF: frozenset[Role] = frozenset({"staff", "admin"})
_ADMIN: frozenset[Role] = frozenset({"admin"})

# the one place that says who may do what
CAPABILITIES: dict[Capability, frozenset[Role]] = {
    "view_orders": _STAFF,
    "create_order": _STAFF,
    "advance_order": _STAFF,
    "delete_order": _STAFF,
    "send_notification": _STAFF,
    "manage_roles": _ADMIN,
    "view_audit_logs": _ADMIN,
}


@dataclass(frozen=True)
class Actor:
    user_id: str
    roles: frozenset[Role] = frozenset()

    @classmethod
    def with_roles(cls, user_id: str, roles: Iterable[str]) -> "Actor":
        return cls(user_id=user_id, roles=frozenset(r for r in roles if r in ROLES))

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & _STAFF)

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles


def can(actor: Optional[Actor], capability: Capability) -> bool:
    return actor is not None and bool(actor.roles & CAPABILITIES[capability])


def require(actor: Optional[Actor], capability: Capability) -> Actor:
    if actor is None:
        raise AuthenticationError("Authentication required.")
    if not can(actor, capability):
        raise AuthorizationError(f"User {actor.user_id} is not allowed to {capability.replace('_', ' ')}.")
    return actor
