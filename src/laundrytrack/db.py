from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import psycopg
from psycopg import AsyncConnection

from .config import DbConfig
from .errors import PersistenceError


class DbError(PersistenceError):
    pass


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    async def connect(self, *, autocommit: bool = False) -> AsyncConnection:
        try:
            return await psycopg.AsyncConnection.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                autocommit=autocommit,
            )
        except psycopg.Error as e:
            raise DbError(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncConnection]:
        conn = await self.connect(autocommit=True)
        try:
            yield conn
        except psycopg.Error as e:
            raise DbError(f"Database query failed: {e}") from e
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        conn = await self.connect()
        try:
            yield conn
            await conn.commit()
        except psycopg.Error as e:
            await conn.rollback()
            raise DbError(f"Database write failed: {e}") from e
        except Exception:
            await conn.rollback()
            raise
        finally:
            await conn.close()
