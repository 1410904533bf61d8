"""
Postgres connection pool for the document store (psycopg_pool).

Sized for the Supabase free tier (60 connections shared with the Supabase
services). Pooled connections run in autocommit; multi-statement work goes
through `transaction()`. The change feed's LISTEN connection is opened
outside the pool because it is held for the life of the process.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATEMENT_TIMEOUT = "30s"
HIGH_UTILIZATION_PERCENT = 80
UNHEALTHY_UTILIZATION_PERCENT = 90


def _application_name(role: str) -> str:
    return f"partner-portal-{settings.environment}-{role}"


class DatabasePoolManager:
    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **config,
        )
        try:
            await pool.open(wait=True)
            self.pool = pool
            self._initialized = True
            await self._probe()
        except Exception as e:
            logger.error("Database pool failed to start", error=str(e))
            self._initialized = False
            self.pool = None
            try:
                await pool.close()
            except Exception as close_error:
                logger.warning("Error closing half-open pool", error=str(close_error))
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready", min_size=config["min_size"], max_size=config["max_size"])

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(_application_name("pool")))
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT)))

    async def _probe(self) -> float:
        """Round-trip a trivial query; returns the latency in ms."""
        started = time.perf_counter()
        async with self.connection() as conn:
            cur = await conn.execute("SELECT 1 AS ok")
            row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Database probe returned an unexpected row")
        return (time.perf_counter() - started) * 1000

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return
        self._initialized = False
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self._initialized or self.pool is None:
            raise RuntimeError("Database pool not initialized")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Commit on clean exit, roll back on exception."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def listen_connection(self) -> psycopg.AsyncConnection:
        """Dedicated autocommit connection for LISTEN; the caller closes it."""
        conn = await psycopg.AsyncConnection.connect(
            settings.SUPABASE_DB_URL, autocommit=True, row_factory=dict_row
        )
        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(_application_name("listener")))
        )
        return conn

    async def health_check(self) -> dict[str, Any]:
        if self._closed:
            return {"healthy": False, "error": "Pool is closed"}
        if not self._initialized:
            return {"healthy": False, "error": "Pool not initialized"}

        try:
            latency_ms = await self._probe()
        except Exception as e:
            logger.error("Database health probe failed", error=str(e))
            return {"healthy": False, "error": str(e), "error_type": type(e).__name__}

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        waiting = stats.get("requests_waiting", 0)
        utilization = (size - available) / size * 100 if size else 0

        health = {
            "healthy": utilization < UNHEALTHY_UTILIZATION_PERCENT,
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": waiting,
            },
        }
        warnings = []
        if utilization > HIGH_UTILIZATION_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if waiting:
            warnings.append(f"{waiting} requests waiting for a connection")
        if warnings:
            health["warnings"] = warnings
        return health


db_pool = DatabasePoolManager()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
