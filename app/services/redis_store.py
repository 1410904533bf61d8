"""
Redis-backed state for the portal: toasts, navigation, sessions and ephemeral
invoice documents.

Every value is stored as a string. Pydantic state objects are written as JSON
and validated on the way back; a value that no longer validates is treated as
absent so a schema change never wedges a user's session.
"""

import base64
import json
from typing import TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def toast_key(user_id: str) -> str:
    return f"toasts:{user_id}"


def navigation_key(user_id: str) -> str:
    return f"nav:{user_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def invoice_document_key(invoice_id: str) -> str:
    return f"invoice-doc:{invoice_id}"


async def ping() -> bool:
    return await fast_redis.ping()


async def get(key: str) -> str | None:
    return await fast_redis.get(key)


async def set_with_ttl(key: str, value: str, ttl_s: int | None = None) -> bool:
    return await fast_redis.set_with_ttl(key, value, ttl_s)


async def delete(key: str) -> bool:
    return await fast_redis.delete(key)


def _dump(value: BaseModel | list[BaseModel]) -> str:
    if isinstance(value, list):
        return json.dumps([item.model_dump(by_alias=True, exclude_none=True, mode="json") for item in value], ensure_ascii=False)
    return json.dumps(value.model_dump(by_alias=True, exclude_none=True, mode="json"), ensure_ascii=False)


async def load_model(key: str, model: type[ModelT]) -> ModelT | None:
    """Read one state object; None when missing or unreadable."""
    raw = await get(key)
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding unreadable state", key=key, model=model.__name__, error=str(e))
        return None


async def load_models(key: str, model: type[ModelT]) -> list[ModelT]:
    """Read a JSON list of state objects; empty when missing or unreadable."""
    raw = await get(key)
    if not raw:
        return []
    try:
        return TypeAdapter(list[model]).validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding unreadable state list", key=key, model=model.__name__, error=str(e))
        return []


async def save_model(key: str, value: BaseModel | list[BaseModel], ttl_s: int | None = None) -> bool:
    stored = await set_with_ttl(key, _dump(value), ttl_s)
    if not stored:
        logger.warning("Failed to store state", key=key)
    return stored


async def save_bytes(key: str, data: bytes, ttl_s: int) -> bool:
    return await set_with_ttl(key, base64.b64encode(data).decode("ascii"), ttl_s)


async def load_bytes(key: str) -> bytes | None:
    encoded = await get(key)
    if not encoded:
        return None
    return base64.b64decode(encoded)
