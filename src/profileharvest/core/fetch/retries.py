"""
Retry helpers for transient failures.

``retry_async`` retries a single call with exponential backoff (tenacity);
``RetryBudget`` caps how many times one record may be attempted again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Attempts and backoff for one retried call.

    The defaults give 3 attempts, waiting 1s then 2s (capped at 4s).
    """

    max_attempts: int = 3
    min_wait: float = 1.0
    max_wait: float = 4.0
    multiplier: float = 1.0
    retry_exceptions: tuple[type[Exception], ...] = (Exception,)

    def build(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.multiplier,
                min=self.min_wait,
                max=self.max_wait,
            ),
            retry=retry_if_exception_type(self.retry_exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Await ``coro_func`` until it succeeds or attempts run out.

    Exceptions outside ``config.retry_exceptions`` propagate at once; the
    last retryable one is re-raised when attempts are exhausted.
    """
    retrying = (config or RetryConfig()).build()
    return await retrying(coro_func, *args, **kwargs)


class RetryBudget:
    """Retries left for a single record.

    Each record gets its own budget, so one that keeps failing is written
    as partial instead of being attempted forever.
    """

    def __init__(self, max_total_retries: int = 3):
        self.max_total_retries = max_total_retries
        self.used = 0

    @property
    def left(self) -> int:
        return max(0, self.max_total_retries - self.used)

    def record_retry(self) -> bool:
        """Spend one retry. Returns False when none are left."""
        if self.used >= self.max_total_retries:
            return False
        self.used += 1
        return True
