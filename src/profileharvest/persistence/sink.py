"""
Append-only output dataset backed by the ``dataset_records`` table.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import SinkError
from .models import DatasetRecord

logger = logging.getLogger(__name__)


class DatasetSink:
    """Accepts harvested records; never updates or deletes them.

    ``append`` commits before returning, so a record handed to the sink
    is durable by the time the caller marks it processed.
    """

    def __init__(self, session: Session):
        self.session = session

    def append(self, record: dict[str, Any], query_fingerprint: str) -> DatasetRecord:
        """Persist one record.

        Raises:
            SinkError: If the write could not be committed
        """
        row = DatasetRecord(
            record_id=str(record["id"]),
            query_fingerprint=query_fingerprint,
            is_partial=bool(record.get("is_partial", False)),
            payload=record,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise SinkError(f"Failed to append record {record.get('id')}: {e}", cause=e) from e
        return row

    def recorded_ids(self, query_fingerprint: str) -> set[str]:
        """Ids (as strings) that already have a record for this query."""
        stmt = select(DatasetRecord.record_id).where(
            DatasetRecord.query_fingerprint == query_fingerprint
        )
        try:
            return set(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            raise SinkError(f"Failed to read recorded ids: {e}", cause=e) from e

    def count(self, query_fingerprint: str | None = None) -> dict[str, int]:
        """Count records, split into complete and partial."""
        stmt = select(DatasetRecord.is_partial, func.count(DatasetRecord.id))
        if query_fingerprint is not None:
            stmt = stmt.where(DatasetRecord.query_fingerprint == query_fingerprint)
        stmt = stmt.group_by(DatasetRecord.is_partial)

        counts = {"complete": 0, "partial": 0}
        for is_partial, n in self.session.execute(stmt):
            counts["partial" if is_partial else "complete"] += n
        counts["total"] = counts["complete"] + counts["partial"]
        return counts

    def iter_records(
        self,
        query_fingerprint: str | None = None,
        include_partial: bool = True,
    ) -> Iterator[dict[str, Any]]:
        """Yield stored payloads in insertion order."""
        stmt = select(DatasetRecord)
        if query_fingerprint is not None:
            stmt = stmt.where(DatasetRecord.query_fingerprint == query_fingerprint)
        if not include_partial:
            stmt = stmt.where(DatasetRecord.is_partial == False)  # noqa: E712
        stmt = stmt.order_by(DatasetRecord.id)

        for row in self.session.execute(stmt).scalars():
            yield row.payload
