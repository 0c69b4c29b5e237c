"""Exponential backoff for generation calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    description: str = "request",
) -> T:
    """Run ``operation`` until it succeeds or the attempts are used up.

    Only retryable ``UpstreamError``s are retried; validation errors and
    terminal upstream errors propagate on the first failure.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except UpstreamError as e:
            if not e.retryable or attempt == attempts:
                raise
            delay = min(max_delay, base_delay * 2 ** (attempt - 1))
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {e}; retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
