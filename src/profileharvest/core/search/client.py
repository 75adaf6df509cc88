"""
Paginated search client for the Profiles person-search endpoint.

Pages through relevance-ordered results with per-page exponential backoff
and stops on whichever end-of-results signal arrives first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from profileharvest.core.backends.base import (
    Backend,
    BackendError,
    FetchError,
    RequestSpec,
)
from profileharvest.core.backends.http_backend import HttpBackend
from profileharvest.core.config.models import SearchConfig
from profileharvest.core.fetch.retries import RetryConfig, retry_async

from .models import Query, RecordSummary, SearchPage
from .sanitize import sanitize_input

logger = logging.getLogger(__name__)


class SearchClient:
    """Collects record summaries for a query.

    Usage:
        async with SearchClient(config) as client:
            summaries = await client.collect(query, max_items=100)
    """

    def __init__(
        self,
        config: SearchConfig | None = None,
        *,
        backend: Backend | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the search client.

        Args:
            config: Search settings
            backend: Transport (defaults to an HttpBackend)
            retry_config: Override the per-page retry policy
        """
        self.config = config or SearchConfig()
        self.backend = backend or HttpBackend(timeout=self.config.timeout_seconds)
        self._owns_backend = backend is None
        self.retry_config = retry_config or RetryConfig(
            max_attempts=self.config.max_attempts,
            min_wait=self.config.backoff_min_seconds,
            max_wait=self.config.backoff_max_seconds,
            retry_exceptions=(BackendError,),
        )

        # Set when the last collect() stopped early because retries ran out
        self.truncated = False

    async def __aenter__(self) -> "SearchClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_backend:
            await self.backend.close()

    def build_payload(self, query: Query, offset: int, page_size: int) -> dict[str, Any]:
        """Build the search request body; every field must be present."""
        return {
            "Keyword": sanitize_input(query.keyword),
            "LastName": "",
            "FirstName": "",
            "InstitutionName": sanitize_input(query.institution),
            "DepartmentName": sanitize_input(query.department),
            "FacultyTypeName": "",
            "OtherOptionsName": [],
            "KeywordExact": False,
            "DepartmentExcept": False,
            "InstitutionExcept": False,
            "Sort": "relevance",
            "SearchType": "people",
            "Count": page_size,
            "Offset": offset,
        }

    def _parse_person(self, item: dict[str, Any]) -> RecordSummary:
        person_id = item.get("PersonID") or ""
        return RecordSummary(
            id=person_id,
            display_name=item.get("DisplayName") or "",
            institution=item.get("InstitutionName") or "",
            department=item.get("DepartmentName") or "",
            rank=item.get("FacultyRank") or "",
            detail_url=f"{self.config.profile_base_url}/{person_id}",
        )

    async def _request_page(self, payload: dict[str, Any]) -> Any:
        request = RequestSpec(
            url=self.config.search_url,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            json_data=payload,
            timeout=self.config.timeout_seconds,
            page_type="search",
        )
        result = await self.backend.fetch(request)
        if not result.ok:
            raise FetchError(
                f"API request failed: {result.status_code}",
                url=request.url,
                status_code=result.status_code,
            )
        return result.json()

    async def fetch_page(
        self,
        query: Query,
        offset: int,
        page_size: int | None = None,
    ) -> SearchPage:
        """Fetch one page of results, retrying transport failures.

        An empty but successful page is returned as-is, not retried.

        Raises:
            BackendError: Once all attempts have failed
        """
        page_size = page_size or self.config.page_size
        payload = self.build_payload(query, offset, page_size)

        data = await retry_async(self._request_page, payload, config=self.retry_config)

        total_available: int | None = None
        people: Any = None
        if isinstance(data, dict):
            count = data.get("Count")
            if isinstance(count, int) and not isinstance(count, bool):
                total_available = count
            people = data.get("People")

        items: list[RecordSummary] = []
        if isinstance(people, list):
            items = [self._parse_person(item) for item in people if isinstance(item, dict)]

        return SearchPage(items=items, total_available=total_available, offset=offset)

    async def collect(self, query: Query, max_items: int) -> list[RecordSummary]:
        """Collect up to ``max_items`` summaries in relevance order.

        Duplicate ids are kept; deduplication happens downstream. A short
        list is a best-effort result, not an error: when a page exhausts its
        retries the summaries gathered so far are returned and ``truncated``
        is set.
        """
        page_size = self.config.page_size
        max_empty_pages = self.config.max_empty_pages
        delay = self.config.request_delay_ms / 1000.0

        summaries: list[RecordSummary] = []
        offset = 1
        total_available: int | None = None
        empty_pages = 0
        self.truncated = False

        logger.info("Searching for researchers...")

        while len(summaries) < max_items:
            try:
                page = await self.fetch_page(query, offset, page_size)
            except BackendError as e:
                self.truncated = True
                logger.warning(
                    f"Search temporarily unavailable at offset {offset}, "
                    f"keeping {len(summaries)} results: {e}"
                )
                break

            if total_available is None and page.total_available is not None:
                total_available = page.total_available
                logger.info(f"Total available researchers: {total_available}")

            if total_available == 0:
                logger.info("Search returned no results")
                break

            if page.is_empty:
                empty_pages += 1
                logger.info(f"Empty page at offset {offset} ({empty_pages}/{max_empty_pages})")

                if empty_pages >= max_empty_pages:
                    logger.info(f"Search complete after {empty_pages} empty pages")
                    break
            else:
                empty_pages = 0
                for summary in page.items:
                    if len(summaries) >= max_items:
                        break
                    summaries.append(summary)

                logger.info(f"Progress: found {len(summaries)} / {total_available or '?'} researchers")

                if len(summaries) >= max_items:
                    logger.info(f"Reached requested maximum: {len(summaries)} profiles")
                    break

            offset += page_size

            if total_available is not None and offset > total_available:
                logger.info("Reached end of results")
                break

            if delay:
                await asyncio.sleep(delay)

        logger.info(f"Search completed: {len(summaries)} profiles collected")
        return summaries[:max_items]
