"""
Bounded polling for values that appear after an eventually-consistent write.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_until_found(
    fetch: Callable[[], Awaitable[T | None]],
    *,
    max_attempts: int,
    delay_s: float,
    operation: str = "lookup",
) -> T | None:
    """
    Call fetch until it returns something other than None.

    The first call happens immediately; each further attempt waits delay_s.
    At most 1 + max_attempts calls are made.

    Returns:
        The first non-None result, or None once the budget is spent
    """
    result = await fetch()
    attempt = 0
    while result is None and attempt < max_attempts:
        attempt += 1
        await asyncio.sleep(delay_s)
        result = await fetch()
        logger.debug(
            "Retrying until found",
            operation=operation,
            attempt=attempt,
            max_attempts=max_attempts,
            found=result is not None,
        )
    return result
