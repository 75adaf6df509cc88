"""
Single-slot resource pool with a lease limit.

Holds at most one lazily created resource. Each lease counts as one use;
once the use count reaches ``max_leases`` the resource is closed and a
fresh one is created for the next lease.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LeasedResource(Generic[T]):
    """Explicitly owned resource that is recycled after ``max_leases`` uses.

    Usage:
        pool = LeasedResource(create_worker, close_worker, max_leases=100)
        async with pool.lease() as worker:
            ...
        await pool.release()
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[T]],
        closer: Callable[[T], Awaitable[None]] | None = None,
        max_leases: int = 100,
        name: str = "resource",
    ):
        if max_leases < 1:
            raise ValueError("max_leases must be at least 1")

        self._factory = factory
        self._closer = closer
        self.max_leases = max_leases
        self.name = name

        self._resource: T | None = None
        self._uses = 0
        self._lock = asyncio.Lock()
        self.created = 0

    @property
    def uses(self) -> int:
        """Leases taken from the current resource."""
        return self._uses

    @property
    def is_active(self) -> bool:
        return self._resource is not None

    async def _close_current(self) -> None:
        resource, self._resource = self._resource, None
        self._uses = 0
        if resource is None or self._closer is None:
            return
        try:
            await self._closer(resource)
        except Exception as e:
            logger.debug(f"Error closing {self.name}: {e}")

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[T]:
        """Borrow the resource exclusively, creating or recycling it first."""
        async with self._lock:
            if self._resource is not None and self._uses >= self.max_leases:
                logger.debug(f"Recycling {self.name} after {self._uses} uses")
                await self._close_current()

            if self._resource is None:
                self._resource = await self._factory()
                self.created += 1

            self._uses += 1
            yield self._resource

    async def release(self) -> None:
        """Close the resource now. A later lease creates a new one."""
        async with self._lock:
            await self._close_current()
