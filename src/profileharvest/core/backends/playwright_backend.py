"""
Playwright backend for rendered profile pages.

All pages of a session share one browser context. ``reset_session`` drops
the context and the browser, so the next fetch starts from a clean
session; the harvest runner calls it between batches.
"""

from __future__ import annotations

import asyncio
import logging
import time

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .base import Backend, BackendError, FetchResult, RequestSpec, raise_for_refusal

logger = logging.getLogger(__name__)

# Best-effort wait for network quiet before reading the page
NETWORK_IDLE_TIMEOUT_MS = 15000


class BrowserError(BackendError):
    """The browser failed while loading a page."""


class NavigationTimeout(BrowserError):
    """The page, or the data it embeds, did not load in time."""


class PlaywrightBackend(Backend):
    """Chromium, launched lazily on the first fetch.

    Each fetch opens and closes its own page, so fetches may run
    concurrently inside one session.
    """

    def __init__(self, headless: bool = True, timeout: float = 30.0, locale: str = "en-US"):
        self.headless = headless
        self.timeout = timeout
        self.locale = locale

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._lock = asyncio.Lock()
        self.sessions_started = 0

    async def _session(self) -> BrowserContext:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                try:
                    self._browser = await self._playwright.chromium.launch(headless=self.headless)
                except PlaywrightError as e:
                    raise BackendError(
                        "Failed to launch chromium. Run: playwright install chromium",
                        cause=e,
                    ) from e
                logger.info(f"Launched chromium (headless={self.headless})")

            if self._context is None:
                self._context = await self._browser.new_context(
                    locale=self.locale,
                    extra_http_headers={"Accept-Language": f"{self.locale},en;q=0.9"},
                )
                self.sessions_started += 1
            return self._context

    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Load a page, wait for its data and return the rendered HTML.

        Raises:
            NavigationTimeout: If navigation or the data wait times out
            BlockedError: On a blocking status code
            BrowserError: On any other page failure
        """
        context = await self._session()
        page: Page | None = None
        started = time.monotonic()

        try:
            page = await context.new_page()
            response = await page.goto(
                request.url,
                timeout=request.timeout * 1000,
                wait_until="domcontentloaded",
            )
            if response is None:
                raise NavigationTimeout(f"No response from {request.url}", url=request.url)
            raise_for_refusal(response.status, request.url)

            try:
                await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                logger.debug(f"Network not idle yet for {request.url}, continuing")

            if request.wait_for_function:
                await page.wait_for_function(
                    request.wait_for_function,
                    timeout=request.wait_timeout * 1000,
                )

            return FetchResult(
                url=request.url,
                final_url=page.url,
                status_code=response.status,
                text=await page.content(),
                headers=dict(response.headers),
                elapsed_ms=(time.monotonic() - started) * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timeout loading {request.url}: {e}", url=request.url, cause=e) from e
        except PlaywrightError as e:
            raise BrowserError(f"Browser error: {e}", url=request.url, cause=e) from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug(f"Error closing page for {request.url}: {e}")

    async def reset_session(self) -> None:
        """Close the context and browser; the next fetch relaunches them."""
        async with self._lock:
            context, self._context = self._context, None
            browser, self._browser = self._browser, None
            if context is not None:
                await context.close()
            if browser is not None:
                await browser.close()

    async def close(self) -> None:
        await self.reset_session()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
