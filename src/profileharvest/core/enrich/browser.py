"""
Browser-driven enrichment adapter.

Loads each profile page in Playwright, waits for the embedded profile
data and hands the rendered HTML to the extractor.
"""

from __future__ import annotations

import logging

from profileharvest.core.backends.base import (
    BlockedError,
    FetchError,
    RateLimitError,
    RequestSpec,
)
from profileharvest.core.backends.playwright_backend import (
    BrowserError,
    NavigationTimeout,
    PlaywrightBackend,
)
from profileharvest.core.config.models import EnrichmentConfig
from profileharvest.core.extract.profile import (
    PRELOAD_READY_JS,
    ExtractionError,
    extract_profile_details,
)
from profileharvest.core.fetch.throttling import RateLimitConfig, RateLimiter
from profileharvest.core.search.models import RecordSummary

from .base import EnrichmentAdapter, EnrichmentResult, FailureKind

logger = logging.getLogger(__name__)

# Status codes for profiles that no longer exist
GONE_STATUS_CODES = {404, 410}

# Transient conditions: a later attempt, usually in a fresh page, can succeed
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ExtractionError,
    NavigationTimeout,
    BlockedError,
    RateLimitError,
    FetchError,
    BrowserError,
)


def classify_failure(error: Exception) -> FailureKind:
    """Map an exception to a retry decision by type."""
    if isinstance(error, RETRYABLE_ERRORS):
        return FailureKind.RETRYABLE
    return FailureKind.PERMANENT


class BrowserEnrichmentAdapter(EnrichmentAdapter):
    """Fetches profile detail pages through a shared browser session.

    A plain ``BackendError`` (for example a browser that cannot be launched)
    is not a per-record failure and propagates to the caller.
    """

    def __init__(
        self,
        config: EnrichmentConfig | None = None,
        *,
        backend: PlaywrightBackend | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.config = config or EnrichmentConfig()
        self.backend = backend or PlaywrightBackend(
            headless=self.config.headless,
            timeout=self.config.navigation_timeout_seconds,
        )
        self.rate_limiter = rate_limiter or RateLimiter(
            RateLimitConfig(
                min_delay_ms=self.config.min_delay_ms,
                max_delay_ms=self.config.max_delay_ms,
                max_concurrency=self.config.concurrency,
            )
        )

    async def fetch(self, summary: RecordSummary) -> EnrichmentResult:
        url = summary.detail_url
        request = RequestSpec(
            url=url,
            timeout=self.config.navigation_timeout_seconds,
            wait_for_function=PRELOAD_READY_JS,
            wait_timeout=self.config.data_wait_timeout_seconds,
            page_type="detail",
        )

        try:
            async with self.rate_limiter.limit(url):
                result = await self.backend.fetch(request)
            if result.status_code in GONE_STATUS_CODES:
                return EnrichmentResult.failure(
                    f"Profile not found (HTTP {result.status_code})",
                    FailureKind.PERMANENT,
                )
            detail = extract_profile_details(result.text, result.final_url or url)
        except RETRYABLE_ERRORS as e:
            kind = classify_failure(e)
            logger.debug(f"Enrichment failed for {url} ({kind.value}): {e}")
            return EnrichmentResult.failure(str(e), kind)

        return EnrichmentResult.success(detail)

    async def reset(self) -> None:
        """Close the browser context so the next batch gets a new session."""
        await self.backend.reset_session()

    async def close(self) -> None:
        await self.backend.close()
