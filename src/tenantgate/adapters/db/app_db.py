"""Application database adapter using asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from importlib import resources
from typing import Any

import asyncpg
import structlog

logger = structlog.get_logger()

# Connection holding the open transaction of the current task, if any.
_tx_conn: ContextVar[asyncpg.Connection | None] = ContextVar("app_db_tx_conn", default=None)


class AppDatabase:
    """Application database for accounts, tenants, memberships and invitations."""

    def __init__(self, dsn: str):
        """Initialize the app database adapter."""
        self.dsn = dsn
        self.pool: asyncpg.Pool[asyncpg.Connection[asyncpg.Record]] | None = None

    async def connect(self) -> None:
        """Create connection pool."""
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )
        logger.info("app_database_connected", dsn=self.dsn.split("@")[-1])

    async def close(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("app_database_disconnected")

    async def apply_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ddl = resources.files("tenantgate.adapters.db").joinpath("schema.sql").read_text()
        await self.execute(ddl)
        logger.info("app_database_schema_applied")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection from the pool.

        Inside ``transaction()`` this yields the transaction's connection so
        every query of the unit of work runs on it.
        """
        current = _tx_conn.get()
        if current is not None:
            yield current
            return
        if self.pool is None:
            raise RuntimeError("Database pool not initialized")
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed queries in one transaction.

        Nested calls become savepoints on the same connection. The
        transaction commits when the block exits normally and rolls back
        when it raises.
        """
        async with self.acquire() as conn:
            async with conn.transaction():
                token = _tx_conn.set(conn)
                try:
                    yield
                finally:
                    _tx_conn.reset(token)

    async def fetch_one(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Fetch a single row."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, *args: Any) -> list[dict[str, Any]]:
        """Fetch all rows."""
        async with self.acquire() as conn:
            rows = await conn.fetch(query, *args)
            return [dict(row) for row in rows]

    async def fetch_value(self, query: str, *args: Any) -> Any:
        """Fetch the first column of the first row."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return status."""
        async with self.acquire() as conn:
            result: str = await conn.execute(query, *args)
            return result

    async def execute_returning(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Execute a query with RETURNING clause."""
        async with self.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if row:
                return dict(row)
            return None
