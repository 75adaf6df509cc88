"""
Checkpointed progress state for a harvest run.

Tracks which record ids have been fully processed for one query, decides
when a checkpoint is due and persists snapshots through a key-value store
so an interrupted run can resume where its last checkpoint left off.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from profileharvest.core.search.models import Query, RecordId

logger = logging.getLogger(__name__)

STATE_KEY = "SCRAPING_STATE"
DEFAULT_CHECKPOINT_INTERVAL = 50


class SnapshotStore(Protocol):
    """The slice of the key-value store progress needs."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProgressState:
    """Single-writer progress record for one run.

    Lifecycle: ``initialize`` → ``mark_processed``/``save_checkpoint`` →
    ``finalize``. The orchestrator owns the instance and serializes every
    mutation; nothing else writes to it.
    """

    def __init__(
        self,
        store: SnapshotStore,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        key: str = STATE_KEY,
    ):
        if checkpoint_interval < 1:
            raise ValueError("checkpoint_interval must be at least 1")

        self.store = store
        self.checkpoint_interval = checkpoint_interval
        self.key = key
        self._reset()

    def _reset(self) -> None:
        # dict used as an insertion-ordered set
        self._processed: dict[RecordId, None] = {}
        self.total_processed = 0
        self.total_requested = 0
        self.started_at: str | None = None
        self.last_checkpoint_at: str | None = None
        self.query: Query | None = None
        self.is_resumed = False

        self._session_started: float | None = None
        self._session_marks = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self, query: Query, total_requested: int) -> bool:
        """Adopt the persisted snapshot if it belongs to ``query``.

        Returns:
            True if a prior snapshot for the same query was resumed
        """
        self._reset()
        snapshot = self.store.get(self.key)

        if snapshot and self._matches(snapshot, query):
            self._load(snapshot)
            self.is_resumed = True
            logger.info(
                f"Resuming previous run: {self.total_processed} profiles already processed"
            )
        else:
            if snapshot:
                logger.info("Query changed since last run, starting fresh")
                self.store.delete(self.key)
            self.started_at = _now_iso()

        self.query = query
        self.total_requested = total_requested
        self._session_started = time.monotonic()
        self._session_marks = 0
        return self.is_resumed

    def finalize(self) -> None:
        """Clear the persisted snapshot and reset in-memory state."""
        self.store.delete(self.key)
        logger.info("Run completed, progress state cleared")
        self._reset()

    @staticmethod
    def _matches(snapshot: Any, query: Query) -> bool:
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("query"), dict):
            return False
        try:
            return Query.from_dict(snapshot["query"]) == query
        except (TypeError, KeyError):
            return False

    def _load(self, snapshot: dict[str, Any]) -> None:
        self._processed = dict.fromkeys(snapshot.get("processed_ids") or [])
        self.total_processed = len(self._processed)
        self.started_at = snapshot.get("started_at") or _now_iso()
        self.last_checkpoint_at = snapshot.get("last_checkpoint_at")

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def is_processed(self, record_id: RecordId) -> bool:
        return record_id in self._processed

    def mark_processed(self, record_id: RecordId) -> None:
        """Record one id as done. Callers mark each id at most once."""
        if record_id in self._processed:
            return
        self._processed[record_id] = None
        self.total_processed += 1
        self._session_marks += 1

    def mark_many(self, record_ids: Iterable[RecordId]) -> int:
        """Mark ids that are already durable elsewhere. Returns how many were new."""
        added = 0
        for record_id in record_ids:
            if record_id not in self._processed:
                self._processed[record_id] = None
                self.total_processed += 1
                added += 1
        return added

    @property
    def processed_ids(self) -> list[RecordId]:
        return list(self._processed)

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def should_checkpoint(self) -> bool:
        return self.total_processed > 0 and self.total_processed % self.checkpoint_interval == 0

    def snapshot(self) -> dict[str, Any]:
        return {
            "processed_ids": self.processed_ids,
            "total_processed": self.total_processed,
            "total_requested": self.total_requested,
            "started_at": self.started_at,
            "last_checkpoint_at": self.last_checkpoint_at,
            "query": self.query.to_dict() if self.query else None,
        }

    def save_checkpoint(self) -> None:
        """Persist the full current snapshot.

        Raises:
            StoreError: If the store rejected the write
        """
        checkpoint_at = _now_iso()
        data = self.snapshot()
        data["last_checkpoint_at"] = checkpoint_at

        self.store.put(self.key, data)
        self.last_checkpoint_at = checkpoint_at

        stats = self.get_stats()
        rate = stats["rate_per_minute"]
        eta = f"{stats['remaining'] / rate:.1f}" if rate > 0 else "?"
        logger.info(
            f"Checkpoint saved: {stats['total_processed']}/{stats['total_requested']} "
            f"({stats['progress_percentage']}%), {stats['remaining']} remaining, "
            f"{rate:.1f}/min, ~{eta} min left"
        )

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Progress figures for logs and the run summary.

        ``rate_per_minute`` counts only ids marked through ``mark_processed``
        in this session, divided by minutes since ``initialize``. Ids adopted
        from a resumed snapshot or added by ``mark_many`` are excluded.
        ``elapsed_seconds`` covers the same window.
        """
        elapsed = 0.0
        if self._session_started is not None:
            elapsed = time.monotonic() - self._session_started

        minutes = elapsed / 60.0
        rate = self._session_marks / minutes if minutes > 0 else 0.0

        percentage = 0
        if self.total_requested:
            percentage = round(100 * self.total_processed / self.total_requested)

        return {
            "total_processed": self.total_processed,
            "total_requested": self.total_requested,
            "remaining": max(0, self.total_requested - self.total_processed),
            "progress_percentage": percentage,
            "rate_per_minute": round(rate, 2),
            "elapsed_seconds": round(elapsed, 1),
            "is_resumed": self.is_resumed,
        }
