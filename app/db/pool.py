# app/db/pool.py
"""
Process-wide PostgreSQL pool.

Opened once by the application lifespan and shared by every repository. The
pool's checkout timeout and the per-connection ``statement_timeout`` together
bound how long any storage call made for a chat command can take.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabasePoolManager:
    def __init__(self):
        self.pool: AsyncConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self.pool is not None

    async def initialize(self) -> None:
        """Open the pool and prove one connection works; raises if it can't."""
        if self.is_open:
            logger.warning("Database pool already initialized")
            return

        pool_config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **pool_config,
        )

        try:
            await pool.open(wait=True)
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool ready",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
            timeout=pool_config["timeout"],
        )

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"slot-bot-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(settings.DB_STATEMENT_TIMEOUT_MS)
            )
        )

    async def close(self) -> None:
        if not self.is_open:
            return

        pool, self.pool = self.pool, None
        try:
            await asyncio.wait_for(pool.close(), timeout=30.0)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        if not self.is_open:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Connection inside a transaction: commit on success, rollback on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.is_open:
            return {"healthy": False, "error": "Pool not initialized"}

        started = time.time()
        try:
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"healthy": False, "error": f"{type(e).__name__}: {e}"}

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "connection_time_ms": round((time.time() - started) * 1000, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = DatabasePoolManager()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
