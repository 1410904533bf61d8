"""
Liveness, readiness and pool statistics for the portal backend.

/readyz always answers 200; load balancers read `overall_ok`. The change feed
is reported but does not gate readiness.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check, db_pool
from app.db.subscriptions import change_feed
from app.services.identity_provider import identity_provider
from app.services.redis_store import ping

router = APIRouter()


async def _timed(probe: Callable[[], Awaitable[Any]]) -> tuple[Any, dict]:
    """Run a probe, returning (result, check) where check carries latency or error."""
    started = time.perf_counter()
    try:
        result = await probe()
    except Exception as e:
        return None, {"ok": False, "error": f"{type(e).__name__}: {e}"}
    return result, {"latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _database_check(health: dict | None, check: dict) -> dict:
    if health is None:
        return check
    check["ok"] = bool(health.get("healthy", False))
    stats = health.get("pool_stats") or {}
    for field in ("pool_size", "pool_available", "pool_utilization_percent"):
        if field in stats:
            check[field] = stats[field]
    if not check["ok"]:
        check["error"] = health.get("error", "Database unhealthy")
    return check


def _configuration_issues() -> list[str]:
    required = {
        "SUPABASE_DB_URL": settings.SUPABASE_DB_URL,
        "SUPABASE_SERVICE_ROLE_KEY": settings.SUPABASE_SERVICE_ROLE_KEY,
        "INVOICE_WEBHOOK_URL": settings.INVOICE_WEBHOOK_URL,
    }
    return [f"{name} not set" for name, value in required.items() if not value]


@router.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "partner-portal"}


@router.get("/readyz")
async def readyz():
    redis_ok, redis_check = await _timed(ping)
    if "error" not in redis_check:
        redis_check["ok"] = bool(redis_ok)

    db_health, db_check = await _timed(db_health_check)
    db_check = _database_check(db_health, db_check)

    auth_ok, auth_check = await _timed(identity_provider.health_check)
    if "error" not in auth_check:
        auth_check["ok"] = bool(auth_ok)

    issues = _configuration_issues()
    checks = {
        "redis": redis_check,
        "database": db_check,
        "auth": auth_check,
        "configuration": {"ok": not issues, "issues": issues or None, "environment": settings.environment},
        "change_feed": change_feed.status(),
    }
    overall_ok = all(checks[name]["ok"] for name in ("redis", "database", "auth", "configuration"))

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/pool-stats")
async def pool_stats():
    if not db_pool._initialized or not db_pool.pool:
        return {"error": "Pool not initialized", "pool_health": "not_initialized"}

    try:
        stats = db_pool.pool.get_stats()
    except Exception as e:
        return {"error": str(e), "pool_health": "error", "error_type": type(e).__name__}

    size = stats.get("pool_size", 0)
    available = stats.get("pool_available", 0)
    return {
        "pool_health": "healthy",
        "pool_size": size,
        "available_connections": available,
        "active_connections": size - available,
        "utilization_percent": round((size - available) / size * 100, 1) if size else 0,
        "requests_waiting": stats.get("requests_waiting", 0),
    }
