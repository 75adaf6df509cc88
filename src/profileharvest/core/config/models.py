"""
Pydantic configuration models for ProfileHarvest.

These models provide type-safe configuration with validation for:
- Run parameters (query and target count)
- Search client behaviour
- Enrichment concurrency and retry budget
- Checkpointing, OCR, database and logging
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from profileharvest.core.search.models import Query


# =============================================================================
# Run Configuration
# =============================================================================


MAX_ITEMS_LIMIT = 500


class RunConfig(BaseModel):
    """Parameters of a single harvest run.

    The three text fields form the resume key; an empty string is a real
    value, not a wildcard.
    """

    search_keywords: str = Field(
        default="",
        description="Free-text keywords passed to the search endpoint",
    )
    department: str = Field(
        default="",
        description="Department name filter",
    )
    institution: str = Field(
        default="",
        description="Institution name filter",
    )
    max_items: int = Field(
        default=50,
        ge=1,
        le=MAX_ITEMS_LIMIT,
        description="Maximum number of profiles to collect",
    )

    @field_validator("search_keywords", "department", "institution", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Treat a missing filter as the empty string."""
        return "" if v is None else v

    def to_query(self) -> Query:
        """Build the immutable query identity for this run."""
        return Query(
            keyword=self.search_keywords,
            department=self.department,
            institution=self.institution,
        )


# =============================================================================
# Search Configuration
# =============================================================================


class SearchConfig(BaseModel):
    """Search endpoint and pagination settings."""

    base_url: str = Field(
        default="https://connects.catalyst.harvard.edu/profiles",
        description="Profiles site root; search and detail URLs derive from it",
    )
    page_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Records requested per search page",
    )
    max_empty_pages: int = Field(
        default=5,
        ge=1,
        description="Consecutive empty pages that end the search",
    )
    request_delay_ms: int = Field(
        default=200,
        ge=0,
        description="Courtesy delay between search page requests",
    )
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Search request timeout in seconds",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per search page before giving up",
    )
    backoff_min_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First backoff delay between search attempts",
    )
    backoff_max_seconds: float = Field(
        default=4.0,
        ge=0.0,
        description="Largest backoff delay between search attempts",
    )

    @property
    def search_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/Search/SearchSvc.aspx?SearchType=person"

    @property
    def profile_base_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/display/Person"


# =============================================================================
# Enrichment Configuration
# =============================================================================


class EnrichmentConfig(BaseModel):
    """Detail-page enrichment settings."""

    concurrency: int = Field(
        default=3,
        ge=1,
        le=5,
        description="Concurrent enrichment operations within a batch",
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Candidates per batch; browser session is reset between batches",
    )
    max_item_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per record for retryable enrichment failures",
    )
    retry_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Pause before retrying a failed record",
    )
    headless: bool = Field(
        default=True,
        description="Run the browser in headless mode",
    )
    navigation_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Detail page navigation timeout",
    )
    data_wait_timeout_seconds: float = Field(
        default=20.0,
        ge=1.0,
        le=300.0,
        description="Time to wait for embedded profile data to appear",
    )
    min_delay_ms: int = Field(
        default=0,
        ge=0,
        description="Minimum delay between detail page requests",
    )
    max_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Maximum delay between detail page requests",
    )

    @field_validator("max_delay_ms")
    @classmethod
    def max_delay_gte_min(cls, v: int, info: Any) -> int:
        """Ensure max delay is at least min delay."""
        min_delay = info.data.get("min_delay_ms", 0)
        if v < min_delay:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return v


# =============================================================================
# Progress Configuration
# =============================================================================


class ProgressConfig(BaseModel):
    """Checkpoint cadence and tolerance."""

    checkpoint_interval: int = Field(
        default=50,
        ge=1,
        le=10000,
        description="Save a checkpoint every N processed records",
    )
    max_checkpoint_failures: int = Field(
        default=3,
        ge=1,
        description="Consecutive checkpoint write failures before the run aborts",
    )


# =============================================================================
# OCR Configuration
# =============================================================================


class OcrConfig(BaseModel):
    """Contact-image OCR fallback settings."""

    enabled: bool = Field(
        default=True,
        description="Recover e-mail addresses from contact images",
    )
    language: str = Field(
        default="eng",
        description="Tesseract language code",
    )
    max_uses: int = Field(
        default=100,
        ge=1,
        description="Recognitions before the OCR worker is recycled",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        description="Image download timeout",
    )
    recognize_timeout_seconds: float = Field(
        default=15.0,
        ge=1.0,
        description="Recognition timeout",
    )


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/profileharvest.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/profileharvest.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    ocr: OcrConfig = Field(default_factory=OcrConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
