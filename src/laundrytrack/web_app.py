from __future__ import annotations

import logging
import os
from typing import Any

from flask import Blueprint, Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import ConfigError, configure_logging, load_config
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DeliveryError,
    InvalidTransitionError,
    LaundryTrackError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .records import format_ts, to_public, to_staff_view
from .reports import daily_activity, items_per_status, status_counts, summary
from .services.access import Actor, require
from .services.audit_service import describe_changes
from .services.notification_service import NotificationRequest
from .wiring import Services, services_from_config

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

# first match wins, so subclasses go before their bases
ERROR_STATUS: list[tuple[type[LaundryTrackError], int]] = [
    (ValidationError, 400),
    (InvalidTransitionError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PersistenceError, 500),
    (DeliveryError, 500),
]


def _services() -> Services:
    return current_app.extensions["laundrytrack"]


async def _actor() -> Actor:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Missing bearer token.")
    user_id = current_app.config["API_TOKENS"].get(token.strip())
    if user_id is None:
        raise AuthenticationError("Invalid credentials.")
    return await _services().roles.actor_for(user_id)


def _body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError({"body": "Request body must be a JSON object"})
    return data


@api.post("/lookup")
async def lookup_order():
    order = await _services().orders.lookup(_body().get("orderId"))
    return jsonify(order=to_public(order))


@api.get("/orders")
async def orders_list():
    require(await _actor(), "view_orders")
    svc = _services().orders
    await svc.refresh()
    orders = svc.filter_by_status(request.args.get("status", "all"))
    return jsonify(orders=[to_staff_view(o) for o in orders])


@api.get("/orders/<order_id>")
async def orders_detail(order_id: str):
    require(await _actor(), "view_orders")
    order = await _services().orders.get_order(order_id)
    return jsonify(order=to_staff_view(order))


@api.post("/orders")
async def orders_new():
    actor = await _actor()
    data = _body()
    order = await _services().orders.create_order(
        actor,
        customer_name=data.get("customerName"),
        phone=data.get("phone"),
        items=data.get("items"),
    )
    return jsonify(order=to_staff_view(order)), 201


@api.post("/orders/<order_id>/status")
async def orders_advance(order_id: str):
    actor = await _actor()
    data = _body()
    order = await _services().orders.advance_status(
        actor,
        order_id,
        data.get("status"),
        expected_status=data.get("expectedStatus"),
    )
    return jsonify(order=to_staff_view(order))


@api.delete("/orders/<order_id>")
async def orders_delete(order_id: str):
    await _services().orders.delete_order(await _actor(), order_id)
    return "", 204


@api.get("/stats")
async def stats():
    require(await _actor(), "view_orders")
    orders = await _services().orders.refresh()
    return jsonify(
        summary=summary(orders),
        statusCounts=status_counts(orders),
        itemsPerStatus=items_per_status(orders),
        daily=daily_activity(orders),
    )


@api.post("/notifications")
async def notifications_send():
    require(await _actor(), "send_notification")
    data = _body()
    req = NotificationRequest(
        phone=data.get("phone"),
        customer_name=data.get("customerName"),
        order_id=data.get("orderId"),
        status=data.get("status"),
        status_message=data.get("statusMessage") or "",
        channel=data.get("channel") or "sms",
    )
    results = await _services().notifications.dispatch(req)
    return jsonify(success=True, results=results)


@api.get("/users")
async def users_list():
    users = await _services().roles.list_users(await _actor())
    return jsonify(
        users=[
            {
                "id": u.user_id,
                "fullName": u.full_name,
                "email": u.email,
                "roles": list(u.roles),
                "createdAt": format_ts(u.created_at),
            }
            for u in users
        ]
    )


@api.post("/users/<user_id>/roles")
async def roles_assign(user_id: str):
    actor = await _actor()
    role = _body().get("role")
    await _services().roles.assign_role(actor, user_id, role)
    return jsonify(userId=user_id, role=role), 201


@api.delete("/users/<user_id>/roles/<role>")
async def roles_remove(user_id: str, role: str):
    await _services().roles.remove_role(await _actor(), user_id, role)
    return "", 204


@api.get("/audit-logs")
async def audit_logs():
    table = request.args.get("table", "all")
    action = request.args.get("action", "all")
    entries = await _services().audit.list_entries(
        await _actor(),
        table_name=None if table == "all" else table,
        action=None if action == "all" else action.upper(),
    )
    return jsonify(
        logs=[
            {
                "id": e.id,
                "tableName": e.table_name,
                "recordId": e.record_id,
                "action": e.action,
                "changes": describe_changes(e),
                "oldData": e.old_data,
                "newData": e.new_data,
                "userId": e.user_id,
                "userEmail": e.user_email,
                "createdAt": format_ts(e.created_at),
            }
            for e in entries
        ]
    )


def _handle_app_error(e: LaundryTrackError):
    status = next((code for cls, code in ERROR_STATUS if isinstance(e, cls)), 500)
    if isinstance(e, PersistenceError):
        logger.error("Storage failure: %s", e)
        return jsonify(error="The order database is unavailable. Please try again."), status
    if isinstance(e, ValidationError):
        return jsonify(error=str(e), errors=e.errors, details=e.messages), status
    if status >= 500:
        logger.error("Request failed: %s", e)
    return jsonify(error=str(e)), status


def _handle_unexpected(e: Exception):
    if isinstance(e, HTTPException):
        return e
    logger.exception("Unhandled error")
    return jsonify(error="Internal server error"), 500


def create_app(services: Services, tokens: dict[str, str] | None = None) -> Flask:
    app = Flask(__name__)
    app.config["API_TOKENS"] = dict(tokens or {})
    app.extensions["laundrytrack"] = services
    app.register_blueprint(api)
    app.register_error_handler(LaundryTrackError, _handle_app_error)
    app.register_error_handler(Exception, _handle_unexpected)
    return app


def main() -> int:
    try:
        cfg = load_config(os.environ.get("LAUNDRYTRACK_CONFIG", "config.toml"))
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2

    configure_logging(cfg.log_level)
    app = create_app(services_from_config(cfg), cfg.auth.tokens)
    app.run(debug=False, host="127.0.0.1", port=int(os.environ.get("PORT", "5000")))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
