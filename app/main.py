"""
Partner portal API with database pool, change feed and Redis lifecycle management.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.db.documents import document_store
from app.db.pool import db_pool
from app.db.subscriptions import change_feed
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import (
    auth,
    dashboard,
    health,
    invoices,
    messages,
    navigation,
    notifications,
    projects,
    realtime,
    users,
)
from app.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, environment=settings.environment, json_logs=not settings.debug)
logger = get_logger(__name__)


async def _cleanup(startup_tasks: list[str]) -> list[str]:
    """Close started services in reverse order; returns the errors encountered."""
    errors = []
    closers = {
        "change_feed": change_feed.stop,
        "redis": fast_redis.close,
        "database_pool": db_pool.close,
    }
    for task in reversed(startup_tasks):
        closer = closers.get(task)
        if closer is None:
            continue
        try:
            logger.info("Closing service", service=task)
            await closer()
        except Exception as e:
            logger.error("Error closing service", service=task, error=str(e))
            errors.append(f"{task}: {e}")
    return errors


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks: list[str] = []

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        await document_store.ensure_schema()
        startup_tasks.append("schema")

        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
        startup_tasks.append("redis")

        # Needs a dedicated connection from the pool for LISTEN
        await change_feed.start()
        startup_tasks.append("change_feed")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)
        await _cleanup(startup_tasks)
        raise

    yield

    logger.info("Application shutting down")
    shutdown_errors = await _cleanup(startup_tasks)

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Partner Portal",
    description="Project, application, invoice and messaging workflows for partner companies",
    version="0.1.0",
    lifespan=lifespan,
)

# Added last runs first: CORS wraps the request context
app.add_middleware(RequestContextMiddleware)
app.add_middleware(CORSMiddleware, allowed_origins=settings.CORS_ALLOWED_ORIGINS)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(invoices.router)
app.include_router(messages.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)
app.include_router(navigation.router)
app.include_router(realtime.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
