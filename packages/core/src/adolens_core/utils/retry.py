"""Bounded retry with exponential backoff and jitter for async operations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_DELAY_MS = 30_000


def backoff_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int = DEFAULT_MAX_DELAY_MS) -> float:
    """Delay before retry number ``attempt + 1``: base * 2**attempt plus up to 1s of jitter, capped."""
    return min(base_delay_ms * 2**attempt + random.uniform(0, 1000), max_delay_ms)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    base_delay_ms: int,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    label: str = "operation",
) -> T:
    """Await ``operation()`` up to ``max_retries + 1`` times.

    ``max_retries`` counts the attempts after the first one. When every
    attempt fails, the last exception is re-raised as-is so callers can
    still tell a network failure from a rejected response.

    The jitter matters: several files failing against the same rate limit
    would otherwise retry in lock-step.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries:
                raise
            delay = backoff_delay_ms(attempt, base_delay_ms, max_delay_ms)
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.1fs...",
                label,
                attempt + 1,
                max_retries + 1,
                e,
                delay / 1000,
            )
            await asyncio.sleep(delay / 1000)
            attempt += 1
