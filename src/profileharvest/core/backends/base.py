"""
Transport contract shared by the HTTP and browser backends.

A backend turns a ``RequestSpec`` into a ``FetchResult``. Status codes the
caller cannot act on (rate limiting, blocking) and transport failures
surface as ``BackendError`` subclasses; every other status is returned.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import orjson

# Status codes that mean the site refused to serve us
BLOCKED_STATUS_CODES = frozenset({403, 406, 418, 451})


class BackendError(Exception):
    """A request could not be completed."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


class FetchError(BackendError):
    """Transport failure, bad status or undecodable body."""


class RateLimitError(BackendError):
    """HTTP 429."""

    def __init__(self, message: str, url: str | None = None, retry_after: float | None = None):
        super().__init__(message, url, status_code=429)
        self.retry_after = retry_after


class BlockedError(BackendError):
    """The site answered with a blocking status code."""


@dataclass
class RequestSpec:
    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    json_data: dict[str, Any] | None = None
    timeout: float = 30.0

    # Browser only: JS predicate that must become truthy before the page is read
    wait_for_function: str | None = None
    wait_timeout: float = 20.0

    # "search", "detail" or "image"; used in log lines
    page_type: str | None = None


@dataclass
class FetchResult:
    url: str
    final_url: str
    status_code: int
    text: str
    headers: dict[str, str]
    elapsed_ms: float
    # Raw body for binary payloads such as contact images
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            FetchError: If the body is not valid JSON
        """
        try:
            return orjson.loads(self.content or self.text)
        except orjson.JSONDecodeError as e:
            raise FetchError(
                f"Response is not valid JSON: {e}",
                url=self.url,
                status_code=self.status_code,
                cause=e,
            ) from e


def raise_for_refusal(status_code: int, url: str, retry_after: str | None = None) -> None:
    """Raise for statuses that mean "stop asking", return for anything else."""
    if status_code == 429:
        try:
            seconds = float(retry_after) if retry_after else None
        except ValueError:
            seconds = None
        raise RateLimitError("Rate limit exceeded", url=url, retry_after=seconds)
    if status_code in BLOCKED_STATUS_CODES:
        raise BlockedError(
            f"Request blocked with status {status_code}",
            url=url,
            status_code=status_code,
        )


class Backend(ABC):
    @abstractmethod
    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Perform one request.

        Raises:
            BackendError: If no usable response was received
        """

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
