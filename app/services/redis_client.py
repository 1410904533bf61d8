"""
Pooled async Redis connection for the portal's short-lived state.

Nothing stored here is authoritative: toasts, navigation stacks, session
contexts and fallback invoice PDFs can all be rebuilt or dropped. Read and
write failures are therefore logged and reported as a miss (None / False)
instead of raised, and the client reconnects lazily on the next call.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _redact(url: str) -> str:
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rpartition('@')[2]}" if "@" in rest else url


class PortalRedis:
    def __init__(self, url: str | None = None, max_connections: int | None = None):
        self._url = url
        self._max_connections = max_connections
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        url = self._url or settings.redis_url()
        max_connections = self._max_connections or settings.REDIS_MAX_CONNECTIONS
        logger.info("Connecting to Redis", url=_redact(url), max_connections=max_connections)
        try:
            self.pool = ConnectionPool.from_url(
                url,
                max_connections=max_connections,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            await self.client.ping()
        except Exception as e:
            logger.error("Redis connection failed", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

        self._initialized = True
        logger.info("Redis ready")

    async def close(self) -> None:
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
        except Exception as e:
            logger.error("Error closing Redis connection", error=str(e))
        finally:
            self._initialized = False
            logger.info("Redis connection closed")

    async def _run(self, op: str, key: str | None, call: Callable[[redis.Redis], Awaitable[T]], fallback: T) -> T:
        try:
            if not self._initialized:
                await self.initialize()
            return await call(self.client)
        except Exception as e:
            logger.error("Redis command failed", op=op, key=key[:40] if key else None, error=str(e))
            return fallback

    async def ping(self) -> bool:
        return bool(await self._run("PING", None, lambda c: c.ping(), False))

    async def get(self, key: str) -> str | None:
        return await self._run("GET", key, lambda c: c.get(key), None) or None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SET, or SETEX when a positive ttl_s is given."""
        if ttl_s:
            result = await self._run("SETEX", key, lambda c: c.setex(key, ttl_s, value), False)
        else:
            result = await self._run("SET", key, lambda c: c.set(key, value), False)
        return bool(result)

    async def delete(self, key: str) -> bool:
        """True only when a key was actually removed."""
        return await self._run("DEL", key, lambda c: c.delete(key), 0) > 0


fast_redis = PortalRedis()
