"""
Search data structures.

Defines the query identity of a run and the lightweight record
summaries produced by the search endpoint.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Union


RecordId = Union[int, str]


@dataclass(frozen=True)
class Query:
    """Immutable search filter; also the identity key for resuming a run.

    Two queries describe the same run only if all three fields match
    exactly.
    """

    keyword: str = ""
    department: str = ""
    institution: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialize using the run-input field names."""
        return {
            "search_keywords": self.keyword,
            "department": self.department,
            "institution": self.institution,
        }

    @property
    def fingerprint(self) -> str:
        """Stable hash of the three fields, used to index stored records."""
        raw = "\x1f".join((self.keyword, self.department, self.institution))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Query":
        return cls(
            keyword=data.get("search_keywords", ""),
            department=data.get("department", ""),
            institution=data.get("institution", ""),
        )


@dataclass(frozen=True)
class RecordSummary:
    """A single search hit, before its detail page is fetched."""

    id: RecordId
    display_name: str = ""
    institution: str = ""
    department: str = ""
    rank: str = ""
    detail_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "institution": self.institution,
            "department": self.department,
            "rank": self.rank,
            "detail_url": self.detail_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecordSummary":
        return cls(
            id=data["id"],
            display_name=data.get("display_name", ""),
            institution=data.get("institution", ""),
            department=data.get("department", ""),
            rank=data.get("rank", ""),
            detail_url=data.get("detail_url", ""),
        )


@dataclass
class SearchPage:
    """Result of fetching one search page."""

    items: list[RecordSummary] = field(default_factory=list)
    total_available: int | None = None  # None when the endpoint did not say
    offset: int = 1

    @property
    def is_empty(self) -> bool:
        return not self.items
