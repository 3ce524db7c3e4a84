# app/db/helpers.py
"""
Query helpers used by the slot repositories.

Every helper turns ``psycopg.Error`` into ``DatabaseError`` so callers above
the repository layer only ever handle one storage exception type. A helper
runs on the connection it is given, or borrows one from the pool.
"""

import asyncio
import functools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Storage failure surfaced from the repository layer."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


@asynccontextmanager
async def _cursor(
    operation: str, query: str, connection: psycopg.AsyncConnection | None
) -> AsyncIterator[psycopg.AsyncCursor]:
    try:
        if connection is not None:
            async with connection.cursor() as cur:
                yield cur
        else:
            async with db_pool.connection() as conn:
                async with conn.cursor() as cur:
                    yield cur
    except psycopg.Error as e:
        logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    async with _cursor("fetch_one", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchone() or None


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    async with _cursor("fetch_all", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row, e.g. a COUNT(*)."""
    async with _cursor("fetch_val", query, connection) as cur:
        await cur.execute(query, params)
        row = await cur.fetchone()
        return next(iter(row.values())) if row else None


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    async with _cursor("execute", query, connection) as cur:
        await cur.execute(query, params)
        return cur.rowcount


async def execute_transaction(statements: list[tuple[str, tuple]]) -> None:
    """Run several statements atomically; used for the schema bootstrap."""
    try:
        async with db_pool.transaction() as conn:
            for query, params in statements:
                await conn.execute(query, params)
    except psycopg.Error as e:
        logger.error("Transaction failed", statement_count=len(statements), error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository call when the connection dropped underneath it.

    Only ``DatabaseError``s caused by ``psycopg.OperationalError`` are retried,
    with exponential backoff; anything else propagates on the first failure.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    transient = isinstance(e.__cause__, psycopg.OperationalError)
                    if not transient or attempt >= max_retries:
                        raise

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Transient database failure, retrying",
                        operation=func.__qualname__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
