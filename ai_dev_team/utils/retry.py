"""Retry utilities for handling transient failures.

Two entry points share one backoff schedule:

    retry_with_backoff: Call an async operation up to ``max_retries`` times.
    async_retry: Decorator form for async functions.

Backoff Formula:
    The wait before attempt ``n + 1`` (after ``n`` failures) is
    ``base_delay * 2 ** (n - 1) + uniform(0, max_jitter)``.
    With base_delay=1.0 and no jitter: 1s, 2s, 4s, ...

Example:
    >>> from ai_dev_team.utils.retry import async_retry
    >>>
    >>> @async_retry(max_retries=3, base_delay=0.5)
    ... async def fetch_plan(client):
    ...     return await client.get("/plan")
"""

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from ai_dev_team.exceptions import RetryExhaustedError

log = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]
JitterFunc = Callable[[float, float], float]


def backoff_delay(
    failures: int,
    base_delay: float,
    max_jitter: float = 0.0,
    jitter: JitterFunc = random.uniform,
) -> float:
    """Return the wait after ``failures`` consecutive failures."""
    delay = base_delay * 2 ** (failures - 1)
    if max_jitter > 0:
        delay += jitter(0, max_jitter)
    return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    name: str,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_jitter: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: SleepFunc = asyncio.sleep,
    jitter: JitterFunc = random.uniform,
) -> T:
    """Run ``operation`` until it succeeds or ``max_retries`` attempts fail.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        name: Operation name used in logs and in the final error
        max_retries: Total number of attempts (not additional retries)
        base_delay: Wait in seconds after the first failure
        max_jitter: Upper bound of the random extra wait per retry
        exceptions: Exception types that trigger a retry; others propagate
            immediately
        sleep: Awaitable sleep used between attempts
        jitter: ``uniform(a, b)`` source for the random component

    Returns:
        The value returned by the first successful attempt.

    Raises:
        RetryExhaustedError: After the last attempt fails. The last error is
            chained as ``__cause__``.
        ValueError: If ``max_retries`` is less than 1.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except exceptions as e:
            if attempt == max_retries:
                log.error("retry_exhausted", operation=name, attempts=attempt, error=str(e))
                raise RetryExhaustedError(name, attempt, e) from e

            delay = backoff_delay(attempt, base_delay, max_jitter, jitter)
            log.warning(
                "retry_attempt",
                operation=name,
                attempt=attempt,
                max_retries=max_retries,
                delay=round(delay, 3),
                error=str(e),
            )
            await sleep(delay)

    raise RuntimeError("Retry logic error")


def async_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_jitter: float = 0.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Decorator for async functions with exponential backoff retry logic.

    Raises:
        RetryExhaustedError: When every attempt failed.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                func.__name__,
                max_retries=max_retries,
                base_delay=base_delay,
                max_jitter=max_jitter,
                exceptions=exceptions,
            )

        return wrapper

    return decorator
