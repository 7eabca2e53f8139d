from __future__ import annotations

import json
from dataclasses import replace
from typing import Optional

from ..domain import AuditLogEntry
from ..errors import ValidationError
from ..propagation import AuditStore, RoleStore
from .access import Actor, require

AUDITED_TABLES = ("orders", "user_roles")
AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")
IGNORED_FIELDS = {"updated_at"}


def describe_changes(entry: AuditLogEntry) -> str:
    if entry.action == "INSERT":
        return "New record created"
    if entry.action == "DELETE":
        return "Record deleted"

    old = entry.old_data or {}
    new = entry.new_data or {}
    changes = []
    for key, value in new.items():
        if key in IGNORED_FIELDS:
            continue
        if json.dumps(old.get(key), sort_keys=True, default=str) != json.dumps(value, sort_keys=True, default=str):
            changes.append(f"{key}: {old.get(key)} → {value}")
    return ", ".join(changes) if changes else "No visible changes"


class AuditService:
    def __init__(self, *, store: AuditStore, roles: RoleStore) -> None:
        self.store = store
        self.roles = roles

    async def list_entries(
        self,
        actor: Optional[Actor],
        *,
        table_name: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        require(actor, "view_audit_logs")
        if table_name is not None and table_name not in AUDITED_TABLES:
            raise ValidationError({"table": f"Table must be one of: {', '.join(AUDITED_TABLES)}"})
        if action is not None and action not in AUDIT_ACTIONS:
            raise ValidationError({"action": f"Action must be one of: {', '.join(AUDIT_ACTIONS)}"})

        entries = await self.store.list_entries(table_name=table_name, action=action, limit=limit)

        emails: dict[str, str] = {}
        for user_id in {e.user_id for e in entries if e.user_id}:
            p = await self.roles.get_profile(user_id)
            emails[user_id] = (p.email if p and p.email else None) or "Unknown"

        return [
            replace(e, user_email=emails[e.user_id] if e.user_id else "System")
            for e in entries
        ]
