"""
Per-host politeness for detail page requests.

Requests to one host are spaced by a random gap and limited to a fixed
number in flight.
"""

from __future__ import annotations

import asyncio
import random
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator
from urllib.parse import urlparse


@dataclass
class RateLimitConfig:
    min_delay_ms: int = 0
    max_delay_ms: int = 500
    max_concurrency: int = 3


@dataclass
class _HostSlot:
    permits: asyncio.Semaphore
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_sent: float = 0.0
    sent: int = 0


class RateLimiter:
    """Spaces out requests per host and caps how many run at once.

    The gap before each request is drawn uniformly from
    ``[min_delay_ms, max_delay_ms]`` and measured from the previous
    request to the same host.
    """

    def __init__(self, config: RateLimitConfig | None = None):
        self.config = config or RateLimitConfig()
        self._hosts: dict[str, _HostSlot] = {}

    def _slot(self, url: str) -> _HostSlot:
        host = urlparse(url).netloc
        slot = self._hosts.get(host)
        if slot is None:
            slot = _HostSlot(permits=asyncio.Semaphore(self.config.max_concurrency))
            self._hosts[host] = slot
        return slot

    def _gap(self) -> float:
        return random.uniform(self.config.min_delay_ms, self.config.max_delay_ms) / 1000.0

    def requests_sent(self, url: str) -> int:
        """Requests let through so far to ``url``'s host."""
        slot = self._hosts.get(urlparse(url).netloc)
        return slot.sent if slot else 0

    @asynccontextmanager
    async def limit(self, url: str) -> AsyncIterator[None]:
        """Hold one of the host's permits for the duration of the block.

        Usage:
            async with rate_limiter.limit(url):
                await backend.fetch(request)
        """
        slot = self._slot(url)
        async with slot.permits:
            async with slot.lock:
                wait = slot.last_sent + self._gap() - time.monotonic()
                if wait > 0:
                    await asyncio.sleep(wait)
                slot.last_sent = time.monotonic()
                slot.sent += 1
            yield
