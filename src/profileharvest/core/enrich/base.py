"""
Enrichment adapter contract.

An adapter turns a record summary into its full detail. Failures are not
raised: they come back as an ``EnrichmentResult`` carrying a typed
classification, and the orchestrator decides whether to try again.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from profileharvest.core.extract.profile import DetailRecord
from profileharvest.core.search.models import RecordSummary


class FailureKind(str, Enum):
    """How an enrichment failure should be handled."""

    RETRYABLE = "retryable"  # transient, worth another attempt
    PERMANENT = "permanent"  # will not succeed on retry


@dataclass
class EnrichmentResult:
    """Outcome of a single enrichment attempt."""

    detail: DetailRecord | None = None
    error: str | None = None
    kind: FailureKind | None = None

    @property
    def ok(self) -> bool:
        return self.detail is not None

    @classmethod
    def success(cls, detail: DetailRecord) -> "EnrichmentResult":
        return cls(detail=detail)

    @classmethod
    def failure(cls, error: str, kind: FailureKind = FailureKind.RETRYABLE) -> "EnrichmentResult":
        return cls(error=error, kind=kind)


class EnrichmentAdapter(ABC):
    """Fetches full record detail for one summary."""

    @abstractmethod
    async def fetch(self, summary: RecordSummary) -> EnrichmentResult:
        """Fetch detail for ``summary.detail_url``. Must not raise for per-item failures."""
        ...

    async def reset(self) -> None:
        """Drop session state so the next batch starts fresh."""
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "EnrichmentAdapter":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
