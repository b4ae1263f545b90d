"""Bounded retry with exponential backoff and jitter for async operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from parts_scraper import metrics
from parts_scraper.ingest import waits

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryState:
    """Progress of a single with_retry invocation."""

    attempt: int = 0
    next_delay: float = 0.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """
    Run ``operation`` until it succeeds or ``max_attempts`` attempts are used.

    Between attempts waits ``min(initial_delay * 2**(attempt-1) + jitter, max_delay)``.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts including the first one
        initial_delay: Seconds before the first retry
        max_delay: Upper bound for any single wait

    Returns:
        The operation's result

    Raises:
        The last exception raised by ``operation`` once attempts are exhausted
    """
    max_attempts = max(1, max_attempts)
    state = RetryState()

    while True:
        state.attempt += 1
        try:
            result = await operation()
            if state.attempt > 1:
                metrics.retry_attempts_total.labels(outcome="recovered").inc()
            return result
        except Exception as e:
            if state.attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed: {e}")
                metrics.retry_attempts_total.labels(outcome="exhausted").inc()
                raise

            state.next_delay = waits.backoff_delay(state.attempt, initial_delay, max_delay)
            logger.warning(
                f"Attempt {state.attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {state.next_delay:.1f}s"
            )
            await waits.delay(state.next_delay)
