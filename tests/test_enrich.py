import asyncio

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from profileharvest.core.backends.base import FetchResult, RequestSpec
from profileharvest.core.backends.http_backend import HttpBackend
from profileharvest.core.backends.playwright_backend import (
    BrowserError,
    NavigationTimeout,
    PlaywrightBackend,
)
from profileharvest.core.config.models import EnrichmentConfig, OcrConfig
from profileharvest.core.enrich import ocr as ocr_module
from profileharvest.core.enrich.base import FailureKind
from profileharvest.core.enrich.browser import BrowserEnrichmentAdapter
from profileharvest.core.enrich.ocr import (
    OcrEngine,
    clean_ocr_text,
    extract_email,
    is_not_available,
    is_valid_email,
)
from profileharvest.core.enrich.pool import LeasedResource
from profileharvest.core.fetch.throttling import RateLimitConfig, RateLimiter
from profileharvest.core.search.models import RecordSummary

from .test_extract import PROFILE_PAGE


# =============================================================================
# OCR helpers
# =============================================================================


def test_clean_ocr_text():
    assert clean_ocr_text(" John.Doe @ Harvard.EDU \n") == "john.doe@harvard.edu"
    assert clean_ocr_text("a|ice@example.0rg") == "alice@example.org"
    assert clean_ocr_text("bob@mail.c0m") == "bob@mail.com"
    assert clean_ocr_text(None) == ""


@pytest.mark.parametrize("text", ["N/A", "n/a", "NA", "Not Available", "none", "---"])
def test_not_available_patterns(text):
    assert is_not_available(text) is True


def test_real_text_is_available():
    assert is_not_available("someone@hms.harvard.edu") is False
    assert is_not_available("") is False


def test_is_valid_email():
    assert is_valid_email("a@b.co") is True
    assert is_valid_email("a@b") is False
    assert is_valid_email("x@y.z") is False
    assert is_valid_email("a" * 95 + "@b.com") is False
    assert is_valid_email("") is False


def test_extract_email():
    assert extract_email("Email: J0hn.Smith@HMS.Harvard.EDU") == "j0hn.smith@hms.harvard.edu"
    assert extract_email("contact\nsmith@hms.harvard.edu") == "contactsmith@hms.harvard.edu"
    assert extract_email("N/A") is None
    assert extract_email("no address here") is None


# =============================================================================
# OCR engine
# =============================================================================


IMAGE_BYTES = b"\x89PNG" + b"\x00" * 200


def image_backend(status=200, content=IMAGE_BYTES):
    def handler(request):
        return httpx.Response(status, content=content)

    return HttpBackend(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_recover_returns_recognized_email(monkeypatch):
    monkeypatch.setattr(
        ocr_module.TesseractWorker, "recognize", lambda self, data: "jane.doe@hms.harvard.edu\n"
    )
    engine = OcrEngine(OcrConfig(), backend=image_backend())

    assert await engine.recover("https://x.org/ShowEmail.ashx") == "jane.doe@hms.harvard.edu"
    await engine.close()


@pytest.mark.asyncio
async def test_recover_treats_na_image_as_absent(monkeypatch):
    monkeypatch.setattr(ocr_module.TesseractWorker, "recognize", lambda self, data: "N/A")
    engine = OcrEngine(OcrConfig(), backend=image_backend())

    assert await engine.recover("https://x.org/e.png") is None


@pytest.mark.asyncio
async def test_recover_ignores_tiny_images_and_errors():
    assert await OcrEngine(backend=image_backend(content=b"tiny")).recover("https://x.org/e.png") is None
    assert await OcrEngine(backend=image_backend(status=404)).recover("https://x.org/e.png") is None
    assert await OcrEngine(backend=image_backend()).recover("") is None


@pytest.mark.asyncio
async def test_recover_handles_recognition_failure(monkeypatch):
    def broken(self, data):
        raise RuntimeError("Tesseract process timeout")

    monkeypatch.setattr(ocr_module.TesseractWorker, "recognize", broken)
    engine = OcrEngine(backend=image_backend())

    assert await engine.recover("https://x.org/e.png") is None


@pytest.mark.asyncio
async def test_recover_disabled():
    engine = OcrEngine(OcrConfig(enabled=False), backend=image_backend())
    assert await engine.recover("https://x.org/e.png") is None


@pytest.mark.asyncio
async def test_worker_recycled_after_max_uses(monkeypatch):
    monkeypatch.setattr(ocr_module.TesseractWorker, "recognize", lambda self, data: "a@b.org")
    engine = OcrEngine(OcrConfig(max_uses=2), backend=image_backend())

    for _ in range(5):
        await engine.recover("https://x.org/e.png")

    assert engine.pool.created == 3
    await engine.close()
    assert engine.pool.is_active is False


# =============================================================================
# Leased resource pool
# =============================================================================


class Worker:
    def __init__(self, number):
        self.number = number
        self.closed = False


def make_pool(max_leases=2):
    created = []

    async def factory():
        worker = Worker(len(created) + 1)
        created.append(worker)
        return worker

    async def closer(worker):
        worker.closed = True

    return LeasedResource(factory, closer, max_leases=max_leases), created


@pytest.mark.asyncio
async def test_pool_creates_lazily():
    pool, created = make_pool()
    assert created == []
    assert pool.is_active is False

    async with pool.lease() as worker:
        assert worker.number == 1
    assert pool.uses == 1


@pytest.mark.asyncio
async def test_pool_recycles_after_max_leases():
    pool, created = make_pool(max_leases=2)

    numbers = []
    for _ in range(5):
        async with pool.lease() as worker:
            numbers.append(worker.number)

    assert numbers == [1, 1, 2, 2, 3]
    assert created[0].closed and created[1].closed
    assert not created[2].closed


@pytest.mark.asyncio
async def test_pool_release_closes_resource():
    pool, created = make_pool()
    async with pool.lease():
        pass

    await pool.release()

    assert created[0].closed
    assert pool.is_active is False
    assert pool.uses == 0

    async with pool.lease() as worker:
        assert worker.number == 2


@pytest.mark.asyncio
async def test_pool_leases_are_exclusive():
    pool, _ = make_pool(max_leases=100)
    active = 0
    peak = 0

    async def use():
        nonlocal active, peak
        async with pool.lease():
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1

    await asyncio.gather(*(use() for _ in range(5)))
    assert peak == 1


def test_pool_rejects_zero_leases():
    with pytest.raises(ValueError):
        LeasedResource(lambda: None, max_leases=0)


# =============================================================================
# Browser adapter
# =============================================================================


class FakeBrowserBackend:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []
        self.resets = 0
        self.closed = False

    async def fetch(self, request):
        self.requests.append(request)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        status, html = self.outcome
        return FetchResult(
            url=request.url,
            final_url=request.url,
            status_code=status,
            text=html,
            headers={},
            elapsed_ms=1.0,
        )

    async def reset_session(self):
        self.resets += 1

    async def close(self):
        self.closed = True


SUMMARY = RecordSummary(
    id=123,
    display_name="Graham O'Brien",
    detail_url="https://connects.catalyst.harvard.edu/profiles/display/Person/123",
)


def make_adapter(outcome):
    backend = FakeBrowserBackend(outcome)
    adapter = BrowserEnrichmentAdapter(
        EnrichmentConfig(),
        backend=backend,
        rate_limiter=RateLimiter(RateLimitConfig(min_delay_ms=0, max_delay_ms=0)),
    )
    return adapter, backend


@pytest.mark.asyncio
async def test_adapter_success():
    adapter, backend = make_adapter((200, PROFILE_PAGE))

    result = await adapter.fetch(SUMMARY)

    assert result.ok
    assert result.detail.last_name == "O'Brien"
    assert backend.requests[0].wait_for_function is not None


@pytest.mark.asyncio
async def test_adapter_missing_data_is_retryable():
    adapter, _ = make_adapter((200, "<html><body>Loading</body></html>"))

    result = await adapter.fetch(SUMMARY)

    assert not result.ok
    assert result.kind is FailureKind.RETRYABLE


@pytest.mark.asyncio
async def test_adapter_timeout_is_retryable():
    adapter, _ = make_adapter(NavigationTimeout("Timeout loading page"))

    result = await adapter.fetch(SUMMARY)

    assert result.kind is FailureKind.RETRYABLE
    assert "Timeout" in result.error


@pytest.mark.asyncio
async def test_adapter_missing_profile_is_permanent():
    adapter, _ = make_adapter((404, "<html>Not found</html>"))

    result = await adapter.fetch(SUMMARY)

    assert result.kind is FailureKind.PERMANENT


@pytest.mark.asyncio
async def test_adapter_reset_and_close():
    adapter, backend = make_adapter((200, PROFILE_PAGE))

    await adapter.reset()
    await adapter.close()

    assert backend.resets == 1
    assert backend.closed


class ClosedContext:
    async def new_page(self):
        raise PlaywrightError("Target page, context or browser has been closed")


class FlakyPage:
    url = "about:blank"

    async def goto(self, url, **kwargs):
        raise PlaywrightError("net::ERR_CONNECTION_RESET")

    async def close(self):
        raise PlaywrightError("Target closed")


class FlakyPageContext:
    async def new_page(self):
        return FlakyPage()


def backend_with_context(monkeypatch, context):
    backend = PlaywrightBackend()

    async def session():
        return context

    monkeypatch.setattr(backend, "_session", session)
    return backend


@pytest.mark.asyncio
async def test_playwright_new_page_failure_is_browser_error(monkeypatch):
    backend = backend_with_context(monkeypatch, ClosedContext())

    with pytest.raises(BrowserError, match="has been closed"):
        await backend.fetch(RequestSpec(url="https://x.org/display/Person/1"))


@pytest.mark.asyncio
async def test_playwright_page_close_error_does_not_mask_failure(monkeypatch):
    backend = backend_with_context(monkeypatch, FlakyPageContext())

    with pytest.raises(BrowserError, match="ERR_CONNECTION_RESET"):
        await backend.fetch(RequestSpec(url="https://x.org/display/Person/1"))


@pytest.mark.asyncio
async def test_adapter_closed_browser_is_retryable(monkeypatch):
    backend = backend_with_context(monkeypatch, ClosedContext())
    adapter = BrowserEnrichmentAdapter(
        EnrichmentConfig(),
        backend=backend,
        rate_limiter=RateLimiter(RateLimitConfig(min_delay_ms=0, max_delay_ms=0)),
    )

    result = await adapter.fetch(SUMMARY)

    assert result.kind is FailureKind.RETRYABLE
    assert "has been closed" in result.error


# =============================================================================
# Rate limiter
# =============================================================================


@pytest.mark.asyncio
async def test_rate_limiter_caps_concurrency_per_host():
    limiter = RateLimiter(RateLimitConfig(min_delay_ms=0, max_delay_ms=0, max_concurrency=2))
    active = 0
    peak = 0

    async def request(url):
        nonlocal active, peak
        async with limiter.limit(url):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(request("https://a.org/p/1") for _ in range(5)))

    assert peak == 2
    assert limiter.requests_sent("https://a.org/other") == 5
    assert limiter.requests_sent("https://b.org/") == 0
