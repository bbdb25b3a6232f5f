"""Retry with exponential backoff for flaky downstream calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_attempts`` is reached.

    The delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)`` seconds,
    capped at ``max_delay``. The last exception is re-raised unchanged.

    Args:
        fn: Zero-argument coroutine factory (called once per attempt)
        max_attempts: Total number of attempts, including the first
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound for any single delay
        retry_on: Exception types that trigger another attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            if attempt == max_attempts:
                raise
            delay = min(base_delay * 2 ** (attempt - 1), max_delay)
            logger.warning(
                "Retrying after failure",
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")
