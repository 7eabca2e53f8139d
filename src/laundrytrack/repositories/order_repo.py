from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import psycopg
from psycopg import AsyncConnection, AsyncCursor, sql
from psycopg.types.json import Jsonb

from ..db import Db, DbError
from ..domain import ChangeEvent, Order, OrderStatus
from ..errors import ConflictError, NotFoundError, PersistenceError
from ..records import from_record, to_record

logger = logging.getLogger(__name__)

CHANGES_CHANNEL = "orders_changes"
COLUMNS = "order_id, customer_name, phone, items, status, timestamps, created_at"


async def set_actor(conn: AsyncConnection, actor_id: Optional[str]) -> None:
    # read by the audit trigger for the rest of the transaction
    if actor_id:
        await conn.execute("SELECT set_config('app.user_id', %s, true);", (actor_id,))


async def fetch_dict(cur: AsyncCursor) -> dict | None:
    row = await cur.fetchone()
    if not row:
        return None
    cols = [d.name for d in cur.description]
    return dict(zip(cols, row))


async def fetch_dicts(cur: AsyncCursor) -> list[dict]:
    cols = [d.name for d in cur.description]
    return [dict(zip(cols, row)) for row in await cur.fetchall()]


def event_from_payload(payload: str) -> ChangeEvent:
    data: dict[str, Any] = json.loads(payload)
    record = data.get("record")
    return ChangeEvent(
        kind=data["op"],
        order_id=data["order_id"],
        order=from_record(record) if record else None,
    )


class OrderRepository:
    def __init__(self, db: Db) -> None:
        self.db = db

    async def insert(self, order: Order, *, actor_id: Optional[str] = None) -> Order:
        rec = to_record(order)
        async with self.db.transaction() as conn:
            await set_actor(conn, actor_id)
            try:
                cur = await conn.execute(
                    f"""
                    INSERT INTO orders(order_id, customer_name, phone, items, status, timestamps, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING {COLUMNS};
                    """,
                    (
                        rec["order_id"],
                        rec["customer_name"],
                        rec["phone"],
                        rec["items"],
                        rec["status"],
                        Jsonb(rec["timestamps"]),
                        order.created_at,
                    ),
                )
            except psycopg.errors.UniqueViolation as e:
                raise PersistenceError(f"Order {order.order_id} already exists.") from e
            return from_record(await fetch_dict(cur))

    async def update(
        self,
        order: Order,
        *,
        expected_status: Optional[OrderStatus] = None,
        actor_id: Optional[str] = None,
    ) -> Order:
        rec = to_record(order)
        query = "UPDATE orders SET status = %s, timestamps = %s WHERE order_id = %s"
        params: list[Any] = [rec["status"], Jsonb(rec["timestamps"]), rec["order_id"]]
        if expected_status is not None:
            query += " AND status = %s"
            params.append(expected_status)
        query += f" RETURNING {COLUMNS};"

        async with self.db.transaction() as conn:
            await set_actor(conn, actor_id)
            cur = await conn.execute(query, params)
            row = await fetch_dict(cur)
            if row is not None:
                return from_record(row)

            cur = await conn.execute("SELECT status FROM orders WHERE order_id = %s;", (rec["order_id"],))
            found = await cur.fetchone()
            if not found:
                raise NotFoundError(f"Order {order.order_id} not found.")
            raise ConflictError(order.order_id, expected_status, found[0])

    async def delete(self, order_id: str, *, actor_id: Optional[str] = None) -> None:
        async with self.db.transaction() as conn:
            await set_actor(conn, actor_id)
            cur = await conn.execute(
                "DELETE FROM orders WHERE order_id = %s RETURNING order_id;",
                (order_id.strip().upper(),),
            )
            if not await cur.fetchone():
                raise NotFoundError(f"Order {order_id} not found.")

    async def get(self, order_id: str) -> Optional[Order]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                f"SELECT {COLUMNS} FROM orders WHERE order_id = %s;",
                (order_id.strip().upper(),),
            )
            row = await fetch_dict(cur)
        return from_record(row) if row else None

    async def list_all(self) -> list[Order]:
        async with self.db.session() as conn:
            cur = await conn.execute(f"SELECT {COLUMNS} FROM orders ORDER BY created_at DESC;")
            rows = await fetch_dicts(cur)
        return [from_record(r) for r in rows]

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        conn = await self.db.connect(autocommit=True)
        try:
            await conn.execute(sql.SQL("LISTEN {};").format(sql.Identifier(CHANGES_CHANNEL)))
            logger.info("Listening for order changes on %s", CHANGES_CHANNEL)
            async for notify in conn.notifies():
                yield event_from_payload(notify.payload)
        except psycopg.Error as e:
            raise DbError(f"Change feed interrupted: {e}") from e
        finally:
            await conn.close()
