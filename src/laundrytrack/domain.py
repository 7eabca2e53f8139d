from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal, Optional

OrderStatus = Literal["received", "washing", "ironing", "ready", "delivered"]
Role = Literal["staff", "admin"]
Channel = Literal["sms", "whatsapp", "both"]
ChangeKind = Literal["insert", "update", "delete"]
AuditAction = Literal["INSERT", "UPDATE", "DELETE"]

STATUS_ORDER: tuple[OrderStatus, ...] = ("received", "washing", "ironing", "ready", "delivered")
INITIAL_STATUS: OrderStatus = "received"
TERMINAL_STATUS: OrderStatus = "delivered"

ROLES: tuple[Role, ...] = ("staff", "admin")
CHANNELS: tuple[Channel, ...] = ("sms", "whatsapp", "both")

STATUS_LABELS: dict[OrderStatus, str] = {
    "received": "Received",
    "washing": "Washing",
    "ironing": "Ironing",
    "ready": "Ready for Pickup",
    "delivered": "Delivered",
}

STATUS_MESSAGES: dict[OrderStatus, str] = {
    "received": "Your order has been received!",
    "washing": "Your clothes are being washed",
    "ironing": "Your clothes are being ironed",
    "ready": "Your clothes are ready for pickup!",
    "delivered": "Your order has been delivered",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_status(value: object) -> bool:
    return isinstance(value, str) and value in STATUS_ORDER


def status_rank(status: str) -> int:
    return STATUS_ORDER.index(status)


def next_status(status: OrderStatus) -> Optional[OrderStatus]:
    """The single status offered after ``status``, or None once delivered."""
    i = status_rank(status)
    return STATUS_ORDER[i + 1] if i + 1 < len(STATUS_ORDER) else None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    # any strictly later status is accepted, not only the immediate successor
    return is_status(target) and status_rank(target) > status_rank(current)


@dataclass(frozen=True)
class StatusEntry:
    status: OrderStatus
    timestamp: datetime


@dataclass(frozen=True)
class Order:
    order_id: str
    customer_name: str
    phone: str
    items: int
    status: OrderStatus
    status_history: tuple[StatusEntry, ...]
    created_at: datetime

    def __post_init__(self) -> None:
        if not self.status_history:
            raise ValueError(f"Order {self.order_id} has an empty status history.")
        if self.status_history[-1].status != self.status:
            raise ValueError(
                f"Order {self.order_id} status '{self.status}' does not match "
                f"last history entry '{self.status_history[-1].status}'."
            )

    @property
    def last_updated(self) -> datetime:
        return self.status_history[-1].timestamp

    @property
    def is_terminal(self) -> bool:
        return self.status == TERMINAL_STATUS

    def advanced_to(self, status: OrderStatus, at: datetime) -> "Order":
        # history timestamps never go backwards, even if the clock does
        at = max(at, self.last_updated)
        return replace(
            self,
            status=status,
            status_history=self.status_history + (StatusEntry(status, at),),
        )


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    order_id: str
    order: Optional[Order] = None


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    full_name: Optional[str]
    email: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class RoleAssignment:
    user_id: str
    role: Role
    created_at: datetime


@dataclass(frozen=True)
class UserWithRoles:
    user_id: str
    full_name: Optional[str]
    email: Optional[str]
    roles: tuple[Role, ...]
    created_at: datetime


@dataclass(frozen=True)
class AuditLogEntry:
    id: int
    table_name: str
    record_id: str
    action: AuditAction
    old_data: Optional[dict[str, Any]]
    new_data: Optional[dict[str, Any]]
    user_id: Optional[str]
    created_at: datetime
    user_email: Optional[str] = None
