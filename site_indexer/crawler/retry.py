# site_indexer/crawler/retry.py
"""
Retry-with-backoff decorator for coroutine functions.

The delay before retry ``n`` (1-based) is
``min(max_backoff_ms, backoff_ms * factor ** (n - 1))`` milliseconds.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger("SiteIndexer")

ExcTypes = Tuple[Type[BaseException], ...]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between."""

    retries: int = 2
    backoff_ms: int = 600
    factor: float = 2.0
    max_backoff_ms: int = 20_000

    def delay_for(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number *attempt* (1-based)."""
        ms = self.backoff_ms * self.factor ** (attempt - 1)
        return min(self.max_backoff_ms, ms) / 1000.0


def with_retry(
    policy: RetryPolicy,
    *,
    retry_on: ExcTypes = (Exception,),
    give_up: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate a coroutine function so it is retried according to *policy*.

    Exceptions outside *retry_on*, or for which ``give_up(exc)`` is true, are
    raised immediately. When retries are exhausted the last exception is
    raised. Cancellation is never retried.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as exc:
                    attempt += 1
                    if (give_up is not None and give_up(exc)) or attempt > policy.retries:
                        raise
                    delay = policy.delay_for(attempt)
                    logger.debug(
                        "Retry %d/%d for %s after %.2f s: %s",
                        attempt, policy.retries, getattr(func, "__name__", func), delay, exc,
                    )
                    await sleep(delay)

        return wrapper

    return decorator


__all__ = ["RetryPolicy", "with_retry"]
