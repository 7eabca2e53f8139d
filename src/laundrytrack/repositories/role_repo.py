from __future__ import annotations

from typing import Optional

from ..db import Db
from ..domain import Role, UserProfile
from .order_repo import fetch_dict, fetch_dicts, set_actor


def _profile(row: dict) -> UserProfile:
    return UserProfile(
        user_id=row["user_id"],
        full_name=row["full_name"],
        email=row["email"],
        created_at=row["created_at"],
    )


class RoleRepository:
    def __init__(self, db: Db) -> None:
        self.db = db

    async def list_profiles(self) -> list[UserProfile]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                "SELECT user_id, full_name, email, created_at FROM profiles ORDER BY created_at;"
            )
            rows = await fetch_dicts(cur)
        return [_profile(r) for r in rows]

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                "SELECT user_id, full_name, email, created_at FROM profiles WHERE user_id = %s;",
                (user_id,),
            )
            row = await fetch_dict(cur)
        return _profile(row) if row else None

    async def roles_for(self, user_id: str) -> list[Role]:
        async with self.db.session() as conn:
            cur = await conn.execute(
                "SELECT role FROM user_roles WHERE user_id = %s ORDER BY id;", (user_id,)
            )
            rows = await cur.fetchall()
        return [r[0] for r in rows]

    async def list_assignments(self) -> list[tuple[str, Role]]:
        async with self.db.session() as conn:
            cur = await conn.execute("SELECT user_id, role FROM user_roles ORDER BY id;")
            rows = await cur.fetchall()
        return [(r[0], r[1]) for r in rows]

    async def add(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        async with self.db.transaction() as conn:
            await set_actor(conn, actor_id)
            cur = await conn.execute(
                """
                INSERT INTO user_roles(user_id, role)
                VALUES (%s, %s)
                ON CONFLICT (user_id, role) DO NOTHING
                RETURNING id;
                """,
                (user_id, role),
            )
            return await cur.fetchone() is not None

    async def remove(self, user_id: str, role: Role, *, actor_id: Optional[str] = None) -> bool:
        async with self.db.transaction() as conn:
            await set_actor(conn, actor_id)
            cur = await conn.execute(
                "DELETE FROM user_roles WHERE user_id = %s AND role = %s RETURNING id;",
                (user_id, role),
            )
            return await cur.fetchone() is not None
