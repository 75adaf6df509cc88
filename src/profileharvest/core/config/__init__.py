"""Configuration loading and validation."""

from .models import (
    MAX_ITEMS_LIMIT,
    AppConfig,
    DatabaseConfig,
    EnrichmentConfig,
    LoggingConfig,
    OcrConfig,
    ProgressConfig,
    RunConfig,
    SearchConfig,
)
from .loader import ConfigError, build_run_config, load_app_config, load_run_config

__all__ = [
    "MAX_ITEMS_LIMIT",
    # Config models
    "AppConfig",
    "DatabaseConfig",
    "EnrichmentConfig",
    "LoggingConfig",
    "OcrConfig",
    "ProgressConfig",
    "RunConfig",
    "SearchConfig",
    # Loaders
    "ConfigError",
    "build_run_config",
    "load_app_config",
    "load_run_config",
]
