"""
httpx backend for the search endpoint and contact images.

Retries are left to the caller (see ``profileharvest.core.fetch.retries``)
so each call site owns its backoff policy.
"""

from __future__ import annotations

import time

import httpx

from .base import Backend, FetchError, FetchResult, RequestSpec, raise_for_refusal

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; profileharvest)",
    "Accept-Language": "en-US,en;q=0.9",
}


class HttpBackend(Backend):
    """One pooled ``httpx.AsyncClient``, created on first use."""

    def __init__(
        self,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            timeout: Default request timeout in seconds
            headers: Extra headers sent with every request
            transport: Replacement transport, e.g. ``httpx.MockTransport`` in tests
        """
        self.timeout = timeout
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _client_for_request(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._client

    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Send a GET or POST (JSON body) request.

        Raises:
            FetchError: On transport failure or an unsupported method
            RateLimitError: On HTTP 429
            BlockedError: On a blocking status code
        """
        method = request.method.upper()
        if method not in ("GET", "POST"):
            raise FetchError(f"Unsupported method: {request.method}", url=request.url)

        client = self._client_for_request()
        started = time.monotonic()
        try:
            response = await client.request(
                method,
                request.url,
                headers=request.headers or None,
                json=request.json_data if method == "POST" else None,
                timeout=request.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetchError(f"Timeout: {e}", url=request.url, cause=e) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Transport error: {e}", url=request.url, cause=e) from e

        raise_for_refusal(
            response.status_code,
            str(response.url),
            retry_after=response.headers.get("Retry-After"),
        )
        return FetchResult(
            url=request.url,
            final_url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            elapsed_ms=(time.monotonic() - started) * 1000,
            content=response.content,
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
