"""Structural checks applied before anything is written.

Every entry point (CLI, HTTP API, programmatic callers) goes through these
functions; they never touch storage.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from .domain import CHANNELS, is_status
from .errors import ValidationError
from .ids import DEFAULT_PREFIX, is_valid_order_id

NAME_MAX_LEN = 100
PHONE_MIN_LEN = 7
PHONE_MAX_LEN = 20
MAX_ITEMS = 1000

NAME_RE = re.compile(r"^[a-zA-Z\s\-'.]+$", re.ASCII)
PHONE_RE = re.compile(r"^[+]?[\d\s\-()]+$", re.ASCII)
LOOKUP_ID_RE = re.compile(r"^[A-Z0-9-]{4,20}$")
MARKUP_RE = re.compile(r"[<>]")


@dataclass(frozen=True)
class OrderInput:
    customer_name: str
    phone: str
    items: int


def _name_error(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return "Customer name is required"
    name = value.strip()
    if len(name) > NAME_MAX_LEN:
        return "Name must be less than 100 characters"
    if not NAME_RE.match(name):
        return "Name contains invalid characters"
    return None


def _phone_error(value: object) -> str | None:
    if not isinstance(value, str):
        return "Phone number must be at least 7 digits"
    phone = value.strip()
    if len(phone) < PHONE_MIN_LEN:
        return "Phone number must be at least 7 digits"
    if len(phone) > PHONE_MAX_LEN:
        return "Phone number is too long"
    if not PHONE_RE.match(phone):
        return "Invalid phone number format"
    return None


def _items_error(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "Items must be a number"
    if isinstance(value, float) and not value.is_integer():
        return "Items must be a whole number"
    if value <= 0:
        return "Items must be greater than 0"
    if value > MAX_ITEMS:
        return "Maximum 1000 items per order"
    return None


def validate_order_input(customer_name: object, phone: object, items: object) -> OrderInput:
    errors: dict[str, str] = {}
    for field, check, value in (
        ("customer_name", _name_error, customer_name),
        ("phone", _phone_error, phone),
        ("items", _items_error, items),
    ):
        msg = check(value)
        if msg:
            errors[field] = msg
    if errors:
        raise ValidationError(errors)

    return OrderInput(
        customer_name=customer_name.strip(),
        phone=phone.strip(),
        items=int(items),
    )


def validate_lookup_id(order_id: object) -> str:
    """Normalise a typed or scanned id; returns it upper-cased."""
    if not isinstance(order_id, str) or not order_id.strip():
        raise ValidationError({"order_id": "Order ID is required"})
    cleaned = order_id.strip().upper()
    if not LOOKUP_ID_RE.match(cleaned):
        raise ValidationError({"order_id": "Invalid order ID format"})
    return cleaned


def validate_notification_fields(
    *,
    phone: object,
    customer_name: object,
    order_id: object,
    status: object,
    channel: object,
    prefix: str = DEFAULT_PREFIX,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not isinstance(phone, str) or not PHONE_RE.match(phone.strip()) or not (
        PHONE_MIN_LEN <= len(phone.strip()) <= PHONE_MAX_LEN
    ):
        errors["phone"] = "Invalid phone number format"
    if not isinstance(customer_name, str) or not customer_name.strip():
        errors["customer_name"] = "Customer name is required"
    elif MARKUP_RE.search(customer_name) or len(customer_name.strip()) > NAME_MAX_LEN:
        errors["customer_name"] = "Customer name contains invalid characters"
    if not is_valid_order_id(order_id, prefix):
        errors["order_id"] = "Invalid order ID format"
    if not is_status(status):
        errors["status"] = "Invalid status"
    if channel not in CHANNELS:
        errors["channel"] = "Invalid channel"
    return errors
