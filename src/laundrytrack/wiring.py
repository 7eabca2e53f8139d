from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import AppConfig
from .db import Db
from .ids import OrderIdGenerator
from .propagation import AuditStore, OrderStore, RoleStore
from .repositories.audit_repo import AuditRepository
from .repositories.memory import (
    InMemoryAuditRepository,
    InMemoryOrderRepository,
    InMemoryRoleRepository,
    profile,
)
from .repositories.order_repo import OrderRepository
from .repositories.role_repo import RoleRepository
from .services.audit_service import AuditService
from .services.notification_service import NotificationService
from .services.order_service import OrderService
from .services.role_service import RoleService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    orders: OrderService
    roles: RoleService
    audit: AuditService
    notifications: NotificationService


def build_stores(cfg: AppConfig) -> tuple[OrderStore, RoleStore, AuditStore]:
    if cfg.backend == "postgres":
        db = Db(cfg.db)
        return OrderRepository(db), RoleRepository(db), AuditRepository(db)

    audit = InMemoryAuditRepository()
    admin = cfg.auth.bootstrap_admin
    roles = InMemoryRoleRepository(
        profiles=[profile(admin, full_name="Administrator")] if admin else [],
        assignments=[(admin, "admin")] if admin else [],
        audit=audit,
    )
    logger.warning("Using the in-memory backend; data is lost on exit.")
    return InMemoryOrderRepository(audit=audit), roles, audit


def build_services(
    cfg: AppConfig,
    order_store: OrderStore,
    role_store: RoleStore,
    audit_store: AuditStore,
) -> Services:
    orders = OrderService(
        store=order_store,
        id_generator=OrderIdGenerator(cfg.shop.order_id_prefix),
    )
    notifications = NotificationService(
        cfg=cfg.notifications,
        store=order_store,
        order_id_prefix=cfg.shop.order_id_prefix,
        shop_name=cfg.shop.name,
    )
    if cfg.notifications.enabled:
        orders.add_status_listener(notifications.notify_status_change)

    return Services(
        orders=orders,
        roles=RoleService(store=role_store),
        audit=AuditService(store=audit_store, roles=role_store),
        notifications=notifications,
    )


def services_from_config(cfg: AppConfig) -> Services:
    return build_services(cfg, *build_stores(cfg))
