"""
Repository for the harvest run log.
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import HarvestRun, utcnow


class RunRepository:
    """Repository for HarvestRun operations.

    Methods flush but do not commit; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        query: dict[str, Any],
        query_fingerprint: str,
        max_items: int,
        resumed: bool = False,
    ) -> HarvestRun:
        """Create a new run in RUNNING state."""
        run = HarvestRun(
            query=query,
            query_fingerprint=query_fingerprint,
            max_items=max_items,
            resumed=resumed,
            status="RUNNING",
        )
        self.session.add(run)
        self.session.flush()
        return run

    def get_by_id(self, run_id: int) -> HarvestRun | None:
        return self.session.get(HarvestRun, run_id)

    def update_stats(
        self,
        run_id: int,
        candidates_found: int | None = None,
        records_complete: int | None = None,
        records_partial: int | None = None,
        checkpoints_saved: int | None = None,
        rate_per_minute: float | None = None,
    ) -> None:
        """Overwrite run statistics with the latest totals."""
        run = self.get_by_id(run_id)
        if not run:
            return

        if candidates_found is not None:
            run.candidates_found = candidates_found
        if records_complete is not None:
            run.records_complete = records_complete
        if records_partial is not None:
            run.records_partial = records_partial
        if checkpoints_saved is not None:
            run.checkpoints_saved = checkpoints_saved
        if rate_per_minute is not None:
            run.rate_per_minute = rate_per_minute
        self.session.flush()

    def complete(
        self,
        run_id: int,
        status: str = "COMPLETED",
        error_message: str | None = None,
        error_traceback: str | None = None,
    ) -> None:
        """Mark a run as finished."""
        run = self.get_by_id(run_id)
        if not run:
            return

        run.status = status
        run.finished_at = utcnow()
        run.error_message = error_message
        run.error_traceback = error_traceback
        self.session.flush()

    def get_recent(
        self,
        query_fingerprint: str | None = None,
        limit: int = 20,
    ) -> Sequence[HarvestRun]:
        """Most recent runs first."""
        stmt = select(HarvestRun)

        if query_fingerprint is not None:
            stmt = stmt.where(HarvestRun.query_fingerprint == query_fingerprint)

        stmt = stmt.order_by(HarvestRun.started_at.desc(), HarvestRun.id.desc())
        stmt = stmt.limit(limit)

        return self.session.execute(stmt).scalars().all()
