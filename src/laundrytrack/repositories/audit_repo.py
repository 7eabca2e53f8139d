from __future__ import annotations

from typing import Any, Optional

from ..db import Db
from ..domain import AuditLogEntry
from .order_repo import fetch_dicts


class AuditRepository:
    """Read side of ``audit_logs``; rows are written by database triggers."""

    def __init__(self, db: Db) -> None:
        self.db = db

    async def list_entries(
        self,
        *,
        table_name: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        where: list[str] = []
        params: list[Any] = []
        if table_name is not None:
            where.append("table_name = %s")
            params.append(table_name)
        if action is not None:
            where.append("action = %s")
            params.append(action)

        query = "SELECT id, table_name, record_id, action, old_data, new_data, user_id, created_at FROM audit_logs"
        if where:
            query += " WHERE " + " AND ".join(where)
        query += " ORDER BY created_at DESC, id DESC LIMIT %s;"
        params.append(limit)

        async with self.db.session() as conn:
            cur = await conn.execute(query, params)
            rows = await fetch_dicts(cur)
        return [AuditLogEntry(**r) for r in rows]
