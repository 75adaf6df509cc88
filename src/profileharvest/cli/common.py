"""Shared CLI setup: configuration, logging and database."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from profileharvest.core.config.loader import ConfigError, load_app_config
from profileharvest.core.config.models import AppConfig

err_console = Console(stderr=True)

CONFIG_OPTION_HELP = "Path to app.yaml (default: configs/app.yaml)"


def load_settings(config_path: Path | None, with_logging: bool = False) -> AppConfig:
    """Load app config, optionally configure logging, and ensure the schema exists."""
    from profileharvest.core.logging import setup_logging
    from profileharvest.persistence.db import init_db

    try:
        config = load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(1)

    config.ensure_directories()

    if with_logging:
        setup_logging(
            level=config.logging.level,
            log_file=config.logging.file,
            json_format=config.logging.json_format,
            rich_console=config.logging.rich_console,
        )

    init_db(config.database.url, echo=config.database.echo)
    return config
