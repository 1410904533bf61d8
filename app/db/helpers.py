"""
Thin query helpers over the shared pool.

Every helper accepts an optional `connection` so document-store calls can join
an open transaction; without one a pooled connection is borrowed for the
single statement. psycopg errors surface as DatabaseError, flagged
recoverable only for connection-level (OperationalError) failures.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql

from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Query = str | sql.Composable


class DatabaseError(Exception):
    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _borrowed(connection: psycopg.AsyncConnection | None) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    if connection is not None:
        yield connection
        return
    async with db_pool.connection() as conn:
        yield conn


async def _run(operation: str, query: Query, params: tuple, connection, consume):
    try:
        async with _borrowed(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await consume(cur)
    except psycopg.Error as e:
        logger.error(
            "Query failed",
            operation=operation,
            query=str(query)[:100],
            sqlstate=e.sqlstate,
            error=str(e),
        )
        raise DatabaseError(
            f"Query failed: {e}",
            operation=operation,
            recoverable=isinstance(e, psycopg.OperationalError),
        ) from e


async def _one(cur):
    return await cur.fetchone()


async def _all(cur):
    return await cur.fetchall()


async def _rowcount(cur):
    return cur.rowcount


async def fetch_one(
    query: Query, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    return await _run("fetch_one", query, params, connection, _one)


async def fetch_all(
    query: Query, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    return await _run("fetch_all", query, params, connection, _all)


async def execute_query(
    query: Query, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a statement; returns the affected row count."""
    return await _run("execute", query, params, connection, _rowcount)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a read on recoverable DatabaseErrors with exponential backoff.

    Do not wrap writes: an insert that reached the server before the
    connection dropped would be applied twice.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable or attempt >= max_retries:
                        raise
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Read failed, retrying",
                        operation=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
