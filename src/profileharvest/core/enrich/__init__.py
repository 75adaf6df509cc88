"""Record enrichment: adapters, OCR fallback and the leased worker pool."""

from .base import EnrichmentAdapter, EnrichmentResult, FailureKind
from .pool import LeasedResource

__all__ = [
    "EnrichmentAdapter",
    "EnrichmentResult",
    "FailureKind",
    "LeasedResource",
]
