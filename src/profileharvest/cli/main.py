"""
ProfileHarvest CLI - Main entry point.

A resumable harvester for researcher profile directories.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from profileharvest import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

install_rich_traceback(show_locals=False, width=120)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name=__app_name__,
    help="Resumable researcher profile harvester",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """ProfileHarvest - resumable researcher profile harvester."""
    pass


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import dataset, harvest  # noqa: E402

app.add_typer(harvest.app, name="harvest", help="Run and manage harvests")
app.add_typer(dataset.app, name="dataset", help="Inspect and export harvested records")


# =============================================================================
# Init Command
# =============================================================================


DEFAULT_APP_CONFIG = """\
# ProfileHarvest configuration
# Values may reference environment variables: ${VAR} or ${VAR:-default}

data_dir: data

database:
  url: ${PROFILEHARVEST_DATABASE_URL:-sqlite:///data/profileharvest.db}
  echo: false

logging:
  level: INFO
  file: logs/profileharvest.log
  json_format: true
  rich_console: true

search:
  base_url: https://connects.catalyst.harvard.edu/profiles
  page_size: 10
  max_empty_pages: 5
  request_delay_ms: 200
  max_attempts: 3

enrichment:
  concurrency: 3
  batch_size: 50
  max_item_retries: 3
  retry_delay_ms: 1000
  headless: true

progress:
  checkpoint_interval: 50
  max_checkpoint_failures: 3

ocr:
  enabled: true
  language: eng
  max_uses: 100
"""


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize the database and default configuration."""
    from profileharvest.core.config.loader import ConfigError, load_app_config
    from profileharvest.persistence.db import init_db

    for dir_path in (Path("configs"), Path("data"), Path("logs")):
        dir_path.mkdir(parents=True, exist_ok=True)

    app_config_path = Path("configs/app.yaml")
    if not app_config_path.exists() or force:
        app_config_path.write_text(DEFAULT_APP_CONFIG, encoding="utf-8")

    try:
        config = load_app_config(app_config_path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(1)

    init_db(config.database.url, echo=config.database.echo)

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - ProfileHarvest initialized[/bold green]\n\n"
        "Created:\n"
        "  - [cyan]configs/app.yaml[/cyan] - Application configuration\n"
        "  - [cyan]data/[/cyan] - Database storage\n"
        "  - [cyan]logs/[/cyan] - Log files\n\n"
        "Next steps:\n"
        "  1. Start a harvest: [yellow]profileharvest harvest run --keywords cardiology[/yellow]\n"
        "  2. Check progress: [yellow]profileharvest harvest status[/yellow]\n"
        "  3. Export results: [yellow]profileharvest dataset export out.jsonl[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
