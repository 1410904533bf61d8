"""
Structured logging for the partner portal backend.

Every entry is a JSON object carrying the service name, environment, the
request id and (once authenticated) the acting user id. Credentials and
partner billing details never reach the log stream: values under sensitive
keys are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "partner-portal"

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "access_token",
        "refresh_token",
        "token",
        "authorization",
        "apikey",
        "bankaccountinfo",
        "invoicenumber",
    }
)
MASK = "***"


def _mask_secrets(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS and event_dict[key] is not None:
            event_dict[key] = MASK
    return event_dict


def _service_fields(environment: str):
    def processor(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def setup_logging(log_level: str = "INFO", environment: str = "development", json_logs: bool = True) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        environment: stamped on every entry
        json_logs: JSON lines when True, coloured console output otherwise
    """
    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _service_fields(environment),
            _mask_secrets,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper()))

    for noisy in ("httpx", "httpcore", "psycopg.pool", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_user(user_id: str) -> None:
    """Attach the acting user to every entry logged for the current request."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def log_request(method: str, path: str, status_code: int, duration_ms: float, user_id: str | None = None):
    """One access-log entry per request; 4xx/5xx are logged as warnings."""
    logger = get_logger("http")
    fields = {"method": method, "path": path, "status_code": status_code, "duration_ms": duration_ms}
    if user_id:
        fields["user_id"] = user_id

    if status_code >= 500:
        logger.error("HTTP request errored", **fields)
    elif status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    else:
        logger.info("HTTP request completed", **fields)
