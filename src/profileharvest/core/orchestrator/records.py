"""
Output record shapes.

Every candidate yields exactly one record: a ``CompleteRecord`` when its
detail page was enriched, or a ``PartialRecord`` carrying only summary
fields and the reason enrichment gave up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from profileharvest.core.extract.profile import DetailRecord
from profileharvest.core.search.models import Query, RecordId, RecordSummary

logger = logging.getLogger(__name__)


def _collected_at() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CompleteRecord:
    id: RecordId
    profile_url: str
    display_name: str
    first_name: str
    last_name: str
    title: str
    institution: str
    department: str
    faculty_rank: str
    address: str
    phone: str
    fax: str
    email: str
    query: dict[str, str]
    collected_at: str = field(default_factory=_collected_at)

    @classmethod
    def merge(
        cls,
        summary: RecordSummary,
        detail: DetailRecord,
        query: Query,
        email: str | None = None,
    ) -> "CompleteRecord":
        """Combine a search hit with its detail; detail values win where present."""
        record = cls(
            id=summary.id,
            profile_url=summary.detail_url,
            display_name=detail.display_name or summary.display_name,
            first_name=detail.first_name,
            last_name=detail.last_name,
            title=detail.title,
            institution=detail.institution or summary.institution,
            department=detail.department or summary.department,
            faculty_rank=summary.rank,
            address=detail.address,
            phone=detail.phone,
            fax=detail.fax,
            email=email if email is not None else detail.email,
            query=query.to_dict(),
        )
        if record.has_limited_detail:
            logger.warning(f"Limited detail extracted for {record.display_name or record.id}")
        return record

    @property
    def has_limited_detail(self) -> bool:
        return not (self.first_name or self.last_name or self.address)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "profile_url": self.profile_url,
            "display_name": self.display_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "title": self.title,
            "institution": self.institution,
            "department": self.department,
            "faculty_rank": self.faculty_rank,
            "address": self.address,
            "phone": self.phone,
            "fax": self.fax,
            "email": self.email,
            "collected_at": self.collected_at,
            "query": self.query,
        }


@dataclass
class PartialRecord:
    id: RecordId
    profile_url: str
    display_name: str
    institution: str
    department: str
    faculty_rank: str
    error: str
    query: dict[str, str]
    collected_at: str = field(default_factory=_collected_at)

    @classmethod
    def from_summary(cls, summary: RecordSummary, error: str, query: Query) -> "PartialRecord":
        return cls(
            id=summary.id,
            profile_url=summary.detail_url,
            display_name=summary.display_name,
            institution=summary.institution,
            department=summary.department,
            faculty_rank=summary.rank,
            error=error,
            query=query.to_dict(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "profile_url": self.profile_url,
            "display_name": self.display_name,
            "institution": self.institution,
            "department": self.department,
            "faculty_rank": self.faculty_rank,
            "error": self.error,
            "is_partial": True,
            "collected_at": self.collected_at,
            "query": self.query,
        }
