from __future__ import annotations

import asyncio
import random

from ..constants import DEFAULT_RETRY_BACKOFF_BASE, DEFAULT_RETRY_BACKOFF_JITTER


def compute_backoff(
    attempt: int,
    base: float = DEFAULT_RETRY_BACKOFF_BASE,
    jitter: float = DEFAULT_RETRY_BACKOFF_JITTER,
) -> float:
    """Exponential backoff with jitter for the given 1-based retry attempt."""
    delay = base**attempt if base > 0 else 0.0
    return delay + (random.uniform(0, jitter) if jitter > 0 else 0.0)


async def schedule_retry(
    attempt: int,
    base: float = DEFAULT_RETRY_BACKOFF_BASE,
    jitter: float = DEFAULT_RETRY_BACKOFF_JITTER,
) -> float:
    """Sleep for the backoff delay before retrying; returns the delay."""
    delay = compute_backoff(attempt, base, jitter)
    await asyncio.sleep(delay)
    return delay
