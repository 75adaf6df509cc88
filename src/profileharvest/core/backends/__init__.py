"""Backend implementations for fetching search results and pages."""

from .base import (
    Backend,
    BackendError,
    BlockedError,
    FetchError,
    FetchResult,
    RateLimitError,
    RequestSpec,
    raise_for_refusal,
)
from .http_backend import HttpBackend
from .playwright_backend import (
    BrowserError,
    NavigationTimeout,
    PlaywrightBackend,
)

__all__ = [
    # Base classes
    "Backend",
    "RequestSpec",
    "FetchResult",
    # Base errors
    "BackendError",
    "FetchError",
    "RateLimitError",
    "BlockedError",
    "raise_for_refusal",
    # HTTP backend
    "HttpBackend",
    # Playwright backend
    "PlaywrightBackend",
    "BrowserError",
    "NavigationTimeout",
]
