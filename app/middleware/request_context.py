"""
Per-request tracing context.

Assigns every request an id (honouring an incoming X-Request-ID so traces can
span the frontend and backend), binds it to the structlog context, echoes it
back on the response and writes one access-log entry. The acting user is
picked up from request.state, where `current_user` leaves it.
"""

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger, log_request

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error while serving request", method=request.method, path=request.url.path)
            raise
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)

        # HTTP scopes only; /ws upgrades bypass this middleware.
        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            user_id=getattr(request.state, "user_id", None),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
