"""
Toast service: short-lived on-screen messages for the acting user.

Toasts live only in Redis, one JSON list per user. Each toast expires after
TOAST_TTL_SECONDS unless dismissed earlier; expired entries are dropped on
every read and write. Toasts are best effort: Redis failures are logged and
never surface to the caller.
"""

import time
import uuid

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.messaging_domain import NotificationType, Toast
from app.services import redis_store

logger = get_logger(__name__)


def _now() -> float:
    return time.time()


async def _load(user_id: str) -> list[Toast]:
    toasts = await redis_store.load_models(redis_store.toast_key(user_id), Toast)
    now = _now()
    return [toast for toast in toasts if toast.expires_at > now]


async def _save(user_id: str, toasts: list[Toast]) -> None:
    key = redis_store.toast_key(user_id)
    if not toasts:
        await redis_store.delete(key)
        return
    ttl_s = max(1, int(max(t.expires_at for t in toasts) - _now()) + 1)
    await redis_store.save_model(key, toasts, ttl_s)


async def push_toast(
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    ttl_s: float | None = None,
) -> Toast:
    """Raise a toast for a user; it auto-dismisses after the TTL."""
    toast = Toast(
        id=f"t{uuid.uuid4().hex[:12]}",
        type=type,
        title=title,
        message=message,
        expires_at=_now() + (ttl_s if ttl_s is not None else settings.TOAST_TTL_SECONDS),
    )
    toasts = await _load(user_id)
    toasts.append(toast)
    await _save(user_id, toasts)

    logger.debug("Toast raised", user_id=user_id, toast_type=type.value, title=title)
    return toast


async def active_toasts(user_id: str) -> list[Toast]:
    """Toasts that are still on screen, oldest first."""
    return await _load(user_id)


async def dismiss_toast(user_id: str, toast_id: str) -> bool:
    toasts = await _load(user_id)
    remaining = [t for t in toasts if t.id != toast_id]
    if len(remaining) == len(toasts):
        return False
    await _save(user_id, remaining)
    return True


async def clear_toasts(user_id: str) -> None:
    await redis_store.delete(redis_store.toast_key(user_id))
