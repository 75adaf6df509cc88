"""Fetch utilities: retries and per-host throttling."""

from .retries import RetryBudget, RetryConfig, retry_async
from .throttling import RateLimitConfig, RateLimiter

__all__ = [
    "RateLimitConfig",
    "RateLimiter",
    "RetryBudget",
    "RetryConfig",
    "retry_async",
]
