"""
SQLAlchemy ORM models for ProfileHarvest.

Defines the database schema:
- KeyValueEntry: durable key-value store (progress checkpoint, candidate cache)
- DatasetRecord: append-only output dataset
- HarvestRun: execution log
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


# =============================================================================
# Key-Value Store
# =============================================================================


class KeyValueEntry(Base):
    """A JSON value stored under a fixed logical key."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry(key='{self.key}')>"


# =============================================================================
# Dataset Record
# =============================================================================


class DatasetRecord(Base):
    """One harvested profile, complete or partial. Rows are never updated."""

    __tablename__ = "dataset_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    query_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    is_partial: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_dataset_query_record", "query_fingerprint", "record_id"),
    )

    def __repr__(self) -> str:
        return f"<DatasetRecord(id={self.id}, record_id='{self.record_id}', partial={self.is_partial})>"


# =============================================================================
# Harvest Run Model
# =============================================================================


class HarvestRun(Base):
    """Execution log for one process lifetime of a harvest run."""

    __tablename__ = "harvest_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    query_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    query: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    max_items: Mapped[int] = mapped_column(Integer, nullable=False)
    resumed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="RUNNING",
        index=True,
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Statistics
    candidates_found: Mapped[int] = mapped_column(Integer, default=0)
    records_complete: Mapped[int] = mapped_column(Integer, default=0)
    records_partial: Mapped[int] = mapped_column(Integer, default=0)
    checkpoints_saved: Mapped[int] = mapped_column(Integer, default=0)
    rate_per_minute: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Error details
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_traceback: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def __repr__(self) -> str:
        return f"<HarvestRun(id={self.id}, status='{self.status}')>"
