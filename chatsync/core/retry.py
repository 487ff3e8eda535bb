"""Exponential backoff for transient transport failures.

Only idempotent identity provider calls go through here. Store writes and
uploads are attempted exactly once.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger("chatsync.retry")

DEFAULT_ATTEMPTS = 2
DEFAULT_BASE_DELAY = 0.2  # seconds


def _calculate_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Delay before the next attempt: base_delay * 2^attempt."""
    return base_delay * (2**attempt)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """Run ``fn`` until it succeeds or ``attempts`` are used up.

    Raises:
        The last caught exception once every attempt failed. Exceptions not
        listed in ``exceptions`` propagate immediately.

    Example:
        response = await with_retry(
            lambda: client.post(url, json=payload),
            attempts=3,
            exceptions=(httpx.RequestError,),
        )
    """
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            return await fn()
        except exceptions as e:
            last_error = e
            if attempt < attempts - 1:
                delay = _calculate_delay(attempt, base_delay)
                logger.debug(
                    "Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                    type(e).__name__,
                    attempt + 1,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)

    raise last_error  # type: ignore[misc]
