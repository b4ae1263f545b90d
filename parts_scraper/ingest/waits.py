"""Delay, jittered backoff and pacing helpers.

Every pause in the ingest layer goes through ``delay`` so a single patch point
controls all waiting (tests replace it with a recorder).
"""

import asyncio
import random
from typing import Sequence, TypeVar

T = TypeVar("T")


async def delay(seconds: float) -> None:
    """Sleep for the given number of seconds."""
    if seconds > 0:
        await asyncio.sleep(seconds)


def random_number(low: float, high: float) -> float:
    """Uniform random value in [low, high]."""
    if high < low:
        low, high = high, low
    return random.uniform(low, high)


async def random_wait(min_seconds: float = 1.0, max_seconds: float = 3.0) -> float:
    """
    Wait a random time between min_seconds and max_seconds.

    Returns:
        The number of seconds waited
    """
    wait = random_number(min_seconds, max_seconds)
    await delay(wait)
    return wait


def backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 1.0,
) -> float:
    """
    Exponential backoff with additive jitter.

    ``attempt`` is 1-based: the first retry waits ``initial_delay`` plus jitter.
    """
    base = initial_delay * (2 ** (max(attempt, 1) - 1))
    return min(base + random.uniform(0, jitter), max_delay)


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split a sequence into consecutive lists of at most ``size`` items."""
    if not items:
        return []
    size = max(1, int(size))
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
