"""
Harvest runner orchestrator.

Coordinates the full harvesting workflow:
search → filter → enrich (batched, bounded concurrency) → persist → checkpoint.

A record is appended to the dataset before its id is marked processed, and
the progress snapshot is only cleared after a run completes, so a crash at
any point resumes without writing a record twice.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TYPE_CHECKING

from profileharvest.core.config.models import AppConfig, RunConfig
from profileharvest.core.enrich.base import EnrichmentAdapter, FailureKind
from profileharvest.core.fetch.retries import RetryBudget
from profileharvest.core.logging import ContextualLogger
from profileharvest.core.orchestrator.records import CompleteRecord, PartialRecord
from profileharvest.core.progress.state import ProgressState
from profileharvest.core.search.models import Query, RecordId, RecordSummary
from profileharvest.persistence.errors import StoreError
from profileharvest.persistence.repo import RunRepository
from profileharvest.persistence.sink import DatasetSink
from profileharvest.persistence.store import KeyValueStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from profileharvest.core.enrich.ocr import OcrEngine
    from profileharvest.core.search.client import SearchClient


logger = logging.getLogger(__name__)

CANDIDATES_KEY = "SEARCH_DUMP"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunPhase(str, Enum):
    """Where a run currently is."""

    PENDING = "PENDING"
    SEARCHING = "SEARCHING"
    ENRICHING = "ENRICHING"
    CHECKPOINTING = "CHECKPOINTING"
    FINALIZING = "FINALIZING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class RunStats:
    """Statistics for a harvest run."""

    status: str = "RUNNING"
    phase: RunPhase = RunPhase.PENDING
    resumed: bool = False

    candidates_found: int = 0
    already_processed: int = 0
    reconciled: int = 0
    records_complete: int = 0
    records_partial: int = 0
    item_retries: int = 0
    ocr_recovered: int = 0
    batches: int = 0
    checkpoints_saved: int = 0
    checkpoint_failures: int = 0
    search_truncated: bool = False

    total_processed: int = 0
    progress_percentage: int = 0
    rate_per_minute: float = 0.0

    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def processed_this_run(self) -> int:
        return self.records_complete + self.records_partial

    @property
    def success_rate(self) -> int:
        """Complete records as a percentage of candidates."""
        if not self.candidates_found:
            return 0
        return round(100 * self.records_complete / self.candidates_found)

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "phase": self.phase.value,
            "resumed": self.resumed,
            "candidates_found": self.candidates_found,
            "already_processed": self.already_processed,
            "reconciled": self.reconciled,
            "records_complete": self.records_complete,
            "records_partial": self.records_partial,
            "item_retries": self.item_retries,
            "ocr_recovered": self.ocr_recovered,
            "batches": self.batches,
            "checkpoints_saved": self.checkpoints_saved,
            "checkpoint_failures": self.checkpoint_failures,
            "search_truncated": self.search_truncated,
            "total_processed": self.total_processed,
            "progress_percentage": self.progress_percentage,
            "rate_per_minute": self.rate_per_minute,
            "success_rate": self.success_rate,
            "duration_seconds": self.duration_seconds,
        }


class HarvestRunner:
    """Orchestrates one harvest run end to end.

    Collaborators are passed in so each can be swapped independently:
    - search_client: produces the candidate list
    - adapter: enriches one candidate at a time
    - store: holds the progress snapshot and the cached candidate list
    - sink: receives output records
    - ocr: optional contact email recovery
    - runs: optional run log
    """

    def __init__(
        self,
        run_config: RunConfig,
        *,
        search_client: SearchClient,
        adapter: EnrichmentAdapter,
        store: KeyValueStore,
        sink: DatasetSink,
        app_config: AppConfig | None = None,
        ocr: OcrEngine | None = None,
        runs: RunRepository | None = None,
    ) -> None:
        self.run_config = run_config
        self.config = app_config or AppConfig()
        self.search_client = search_client
        self.adapter = adapter
        self.store = store
        self.sink = sink
        self.ocr = ocr
        self.runs = runs

        self.progress = ProgressState(
            store,
            checkpoint_interval=self.config.progress.checkpoint_interval,
        )
        self.stats = RunStats()
        self.log: logging.Logger | ContextualLogger = logger

        self._commit_lock = asyncio.Lock()
        self._consecutive_checkpoint_failures = 0
        self._run_id: int | None = None

    @classmethod
    def from_config(
        cls,
        app_config: AppConfig,
        run_config: RunConfig,
        session: Session,
    ) -> "HarvestRunner":
        """Wire up the production collaborators."""
        from profileharvest.core.enrich.browser import BrowserEnrichmentAdapter
        from profileharvest.core.enrich.ocr import OcrEngine
        from profileharvest.core.search.client import SearchClient

        return cls(
            run_config,
            app_config=app_config,
            search_client=SearchClient(app_config.search),
            adapter=BrowserEnrichmentAdapter(app_config.enrichment),
            store=KeyValueStore(session),
            sink=DatasetSink(session),
            ocr=OcrEngine(app_config.ocr) if app_config.ocr.enabled else None,
            runs=RunRepository(session),
        )

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def _set_phase(self, phase: RunPhase) -> None:
        self.stats.phase = phase
        logger.debug(f"Run phase: {phase.value}")

    async def run(self) -> RunStats:
        """Execute a complete harvest run.

        Returns:
            RunStats with status COMPLETED or FAILED
        """
        stats = self.stats
        query = self.run_config.to_query()
        self.log = ContextualLogger(logger, query=query.to_dict())

        try:
            self._set_phase(RunPhase.SEARCHING)
            stats.resumed = self.progress.initialize(query, self.run_config.max_items)
            self._start_run_log(query, stats.resumed)

            candidates, from_cache = await self._load_candidates(query)
            stats.candidates_found = len(candidates)

            # A cached candidate list without a snapshot means the last run
            # died before its first checkpoint and may have written records.
            if stats.resumed or from_cache:
                stats.reconciled = self._reconcile(query, candidates)

            pending = self._pending(candidates)
            stats.already_processed = len(candidates) - len(pending)
            if stats.already_processed:
                self.log.info(f"Skipping {stats.already_processed} already processed profiles")

            await self._enrich_all(pending, query)

            self._set_phase(RunPhase.FINALIZING)
            self._update_progress_stats()
            self._log_summary()
            self.progress.finalize()
            self.store.delete(CANDIDATES_KEY)

            stats.status = "COMPLETED"
            self._set_phase(RunPhase.DONE)
            self._finish_run_log("COMPLETED")

        except Exception as e:
            stats.status = "FAILED"
            stats.errors.append(str(e))
            self._set_phase(RunPhase.FAILED)
            self.log.exception(f"Harvest run failed: {e}")

            self._save_last_checkpoint()
            self._update_progress_stats()
            self._finish_run_log("FAILED", str(e), traceback.format_exc())

        finally:
            stats.finished_at = _utcnow()
            await self._close_collaborators()

        return stats

    async def _close_collaborators(self) -> None:
        for name, closeable in (
            ("enrichment adapter", self.adapter),
            ("OCR engine", self.ocr),
            ("search client", self.search_client),
        ):
            if closeable is None:
                continue
            try:
                await closeable.close()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    async def _load_candidates(self, query: Query) -> tuple[list[RecordSummary], bool]:
        """Reuse the cached candidate list for this query, otherwise search.

        The cache is honoured with or without a progress snapshot, so a run
        killed before its first checkpoint does not search twice. A fresh
        search result is cached before any enrichment starts.

        Returns:
            (candidates, True if they came from the cache)
        """
        max_items = self.run_config.max_items

        cached = self.store.get(CANDIDATES_KEY)
        if (
            isinstance(cached, dict)
            and cached.get("query") == query.to_dict()
            and isinstance(cached.get("items"), list)
        ):
            candidates = [RecordSummary.from_dict(item) for item in cached["items"]]
            self.log.info(f"Loaded {len(candidates)} cached search results")
            return candidates[:max_items], True
        if self.stats.resumed:
            self.log.info("No cached search results for this query, searching again")

        candidates = await self.search_client.collect(query, max_items)
        if self.search_client.truncated:
            self.stats.search_truncated = True
            self.log.warning(
                f"Search was cut short after retries; continuing with {len(candidates)} profiles"
            )

        self.store.put(
            CANDIDATES_KEY,
            {"query": query.to_dict(), "items": [c.to_dict() for c in candidates]},
        )
        self.log.info(f"Saved {len(candidates)} search results to intermediate storage")
        return candidates, False

    def _reconcile(self, query: Query, candidates: list[RecordSummary]) -> int:
        """Mark ids already in the dataset but missing from the checkpoint."""
        recorded = self.sink.recorded_ids(query.fingerprint)
        if not recorded:
            return 0

        missing = [
            c.id for c in candidates
            if str(c.id) in recorded and not self.progress.is_processed(c.id)
        ]
        added = self.progress.mark_many(missing)
        if added:
            self.log.info(f"Recovered {added} profiles written after the last checkpoint")
        return added

    def _pending(self, candidates: list[RecordSummary]) -> list[RecordSummary]:
        """Unprocessed candidates, first occurrence of each id only."""
        seen: set[RecordId] = set()
        pending: list[RecordSummary] = []
        for candidate in candidates:
            if candidate.id in seen or self.progress.is_processed(candidate.id):
                continue
            seen.add(candidate.id)
            pending.append(candidate)
        return pending

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    async def _enrich_all(self, pending: list[RecordSummary], query: Query) -> None:
        batch_size = self.config.enrichment.batch_size
        batches = [pending[i:i + batch_size] for i in range(0, len(pending), batch_size)]

        if batches:
            self.log.info(
                f"Processing {len(pending)} profiles in {len(batches)} batches "
                f"(concurrency {self.config.enrichment.concurrency})"
            )

        for number, batch in enumerate(batches, 1):
            self._set_phase(RunPhase.ENRICHING)
            logger.info(
                f"Starting batch {number}/{len(batches)} ({len(batch)} profiles)",
                extra={"batch": number},
            )
            await self._process_batch(batch, query, number)
            self.stats.batches += 1

            self._set_phase(RunPhase.CHECKPOINTING)
            self._checkpoint()

            if number < len(batches):
                await self.adapter.reset()

    async def _process_batch(self, batch: list[RecordSummary], query: Query, number: int) -> None:
        """Enrich one batch under the concurrency bound.

        The first fatal error cancels the rest of the batch and propagates.
        """
        semaphore = asyncio.Semaphore(self.config.enrichment.concurrency)

        async def worker(summary: RecordSummary) -> None:
            async with semaphore:
                await self._process_item(summary, query, number)

        tasks = [asyncio.create_task(worker(summary)) for summary in batch]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _process_item(self, summary: RecordSummary, query: Query, batch: int) -> None:
        name = summary.display_name or str(summary.id)
        extra = {"record_id": summary.id, "batch": batch, "url": summary.detail_url}
        retry_delay = self.config.enrichment.retry_delay_ms / 1000.0
        budget = RetryBudget(self.config.enrichment.max_item_retries)

        while True:
            result = await self.adapter.fetch(summary)
            if result.ok:
                break
            if result.kind is not FailureKind.RETRYABLE or not budget.record_retry():
                break

            self.stats.item_retries += 1
            logger.info(
                f"Retrying {name} (attempt {budget.used + 1}/{budget.max_total_retries + 1}): "
                f"{result.error}",
                extra={**extra, "attempt": budget.used + 1},
            )
            if retry_delay:
                await asyncio.sleep(retry_delay)

        detail = result.detail
        if detail is not None:
            email = detail.email
            if not email and detail.email_image_url and self.ocr is not None:
                email = await self._recover_email(self.ocr, detail.email_image_url, name, extra)

            record: CompleteRecord | PartialRecord = CompleteRecord.merge(
                summary, detail, query, email=email
            )
            await self._commit(summary.id, record.to_dict(), partial=False)
            logger.debug(f"Saved profile: {name}", extra=extra)
        else:
            error = result.error or "Unknown enrichment error"
            record = PartialRecord.from_summary(summary, error, query)
            await self._commit(summary.id, record.to_dict(), partial=True)
            logger.warning(f"Partial data saved for {name}: {error}", extra=extra)

    async def _recover_email(
        self, ocr: OcrEngine, image_url: str, name: str, extra: dict[str, Any]
    ) -> str:
        """OCR the email image. Any failure leaves the email empty."""
        try:
            email = await ocr.recover(image_url) or ""
        except Exception as e:
            logger.debug(f"Email OCR failed for {name}: {e}", extra=extra)
            return ""
        if email:
            self.stats.ocr_recovered += 1
        return email

    async def _commit(self, record_id: RecordId, data: dict[str, Any], partial: bool) -> None:
        """Append to the sink, then mark processed. Serialized across tasks.

        Raises:
            SinkError: If the sink rejected the record
        """
        async with self._commit_lock:
            if self.progress.is_processed(record_id):
                return

            self.sink.append(data, self.run_config.to_query().fingerprint)
            self.progress.mark_processed(record_id)

            if partial:
                self.stats.records_partial += 1
            else:
                self.stats.records_complete += 1

            if self.progress.should_checkpoint():
                self._checkpoint()

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def _checkpoint(self) -> None:
        """Save a checkpoint, tolerating isolated write failures.

        Raises:
            StoreError: After ``max_checkpoint_failures`` consecutive failures
        """
        try:
            self.progress.save_checkpoint()
        except StoreError as e:
            self._consecutive_checkpoint_failures += 1
            self.stats.checkpoint_failures += 1
            limit = self.config.progress.max_checkpoint_failures

            if self._consecutive_checkpoint_failures >= limit:
                raise StoreError(
                    f"Checkpoint failed {self._consecutive_checkpoint_failures} times in a row",
                    cause=e,
                ) from e

            self.log.warning(
                f"Checkpoint failed ({self._consecutive_checkpoint_failures}/{limit}): {e}"
            )
            return

        self._consecutive_checkpoint_failures = 0
        self.stats.checkpoints_saved += 1

    def _save_last_checkpoint(self) -> None:
        """Best-effort checkpoint after a fatal error."""
        if self.progress.query is None or self.progress.total_processed == 0:
            return
        try:
            self.progress.save_checkpoint()
            self.stats.checkpoints_saved += 1
        except StoreError as e:
            self.log.warning(f"Could not save final checkpoint: {e}")

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _update_progress_stats(self) -> None:
        progress = self.progress.get_stats()
        self.stats.total_processed = progress["total_processed"]
        self.stats.progress_percentage = progress["progress_percentage"]
        self.stats.rate_per_minute = progress["rate_per_minute"]

    def _log_summary(self) -> None:
        stats = self.stats
        self.log.info("Harvest completed")
        self.log.info(f"  Profiles found: {stats.candidates_found}")
        self.log.info(
            f"  Processed this run: {stats.processed_this_run} "
            f"({stats.records_complete} complete, {stats.records_partial} partial)"
        )
        if stats.already_processed:
            self.log.info(f"  Skipped (already processed): {stats.already_processed}")
        self.log.info(f"  Success rate: {stats.success_rate}%")
        self.log.info(f"  Processing rate: {stats.rate_per_minute:.1f} profiles/min")

    def _start_run_log(self, query: Query, resumed: bool) -> None:
        if self.runs is None:
            return
        run = self.runs.create(
            query=query.to_dict(),
            query_fingerprint=query.fingerprint,
            max_items=self.run_config.max_items,
            resumed=resumed,
        )
        self.runs.session.commit()
        self._run_id = run.id
        self.log = ContextualLogger(logger, run_id=run.id, query=query.to_dict())

    def _finish_run_log(
        self,
        status: str,
        error_message: str | None = None,
        error_traceback: str | None = None,
    ) -> None:
        if self.runs is None or self._run_id is None:
            return
        try:
            self.runs.update_stats(
                self._run_id,
                candidates_found=self.stats.candidates_found,
                records_complete=self.stats.records_complete,
                records_partial=self.stats.records_partial,
                checkpoints_saved=self.stats.checkpoints_saved,
                rate_per_minute=self.stats.rate_per_minute,
            )
            self.runs.complete(
                self._run_id,
                status=status,
                error_message=error_message,
                error_traceback=error_traceback,
            )
            self.runs.session.commit()
        except Exception as e:
            self.runs.session.rollback()
            logger.warning(f"Could not update run log: {e}")


async def run_harvest(
    run_config: RunConfig,
    app_config: AppConfig,
    session: Session,
) -> RunStats:
    """Convenience function to run one harvest with production collaborators."""
    runner = HarvestRunner.from_config(app_config, run_config, session)
    return await runner.run()
