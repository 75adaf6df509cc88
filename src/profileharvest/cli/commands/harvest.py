"""
Harvest commands: run, status and reset.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from profileharvest.cli.common import CONFIG_OPTION_HELP, load_settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Run and manage harvests",
    no_args_is_help=True,
)


@app.command("run")
def run_harvest(
    keywords: str = typer.Option(
        "",
        "--keywords",
        "-k",
        help="Search keywords",
    ),
    department: str = typer.Option(
        "",
        "--department",
        "-d",
        help="Department filter",
    ),
    institution: str = typer.Option(
        "",
        "--institution",
        "-i",
        help="Institution filter",
    ),
    max_items: int = typer.Option(
        50,
        "--max-items",
        "-n",
        help="Maximum profiles to harvest (1-500)",
    ),
    input_file: Optional[Path] = typer.Option(
        None,
        "--input",
        help="YAML file with run parameters (overrides the options above)",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Harvest profiles for a query, resuming a previous run of the same query.

    Examples:
        profileharvest harvest run --keywords cardiology --max-items 100
        profileharvest harvest run -k genomics -i "Harvard Medical School"
        profileharvest harvest run --input run.yaml
    """
    from profileharvest.core.config.loader import (
        ConfigError,
        build_run_config,
        load_run_config,
    )
    from profileharvest.core.orchestrator.runner import HarvestRunner
    from profileharvest.persistence.db import get_sync_session

    # Validate run parameters before touching the network
    try:
        if input_file is not None:
            run_config = load_run_config(input_file)
        else:
            run_config = build_run_config(
                search_keywords=keywords,
                department=department,
                institution=institution,
                max_items=max_items,
            )
    except ConfigError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    config = load_settings(config_path, with_logging=True)

    console.print()
    console.print(
        f"[bold]Search criteria:[/bold] keywords=\"{run_config.search_keywords}\", "
        f"department=\"{run_config.department}\", institution=\"{run_config.institution}\", "
        f"max profiles={run_config.max_items}"
    )
    console.print()

    session = get_sync_session()
    try:
        runner = HarvestRunner.from_config(config, run_config, session)
        stats = asyncio.run(runner.run())
    finally:
        session.close()

    _show_summary(stats)

    if stats.status != "COMPLETED":
        raise typer.Exit(1)


def _show_summary(stats) -> None:
    """Show a summary table for a finished run."""
    table = Table(title="Harvest Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    status_style = "green" if stats.status == "COMPLETED" else "red"
    table.add_row("Status", f"[{status_style}]{stats.status}[/{status_style}]")
    table.add_row("Resumed", "yes" if stats.resumed else "no")
    table.add_row("Profiles found", str(stats.candidates_found))
    table.add_row("Already processed", str(stats.already_processed))
    table.add_row("Complete records", f"[green]{stats.records_complete}[/green]")
    table.add_row("Partial records", f"[yellow]{stats.records_partial}[/yellow]")
    table.add_row("Success rate", f"{stats.success_rate}%")
    table.add_row("Rate", f"{stats.rate_per_minute:.1f}/min")
    if stats.duration_seconds is not None:
        table.add_row("Duration", f"{stats.duration_seconds:.1f}s")

    console.print()
    console.print(table)

    if stats.search_truncated:
        console.print("[yellow]Search was cut short; results may be incomplete.[/yellow]")

    for error in stats.errors[:5]:
        console.print(f"[red]  • {error}[/red]")
    if stats.status != "COMPLETED":
        console.print("[dim]Progress was checkpointed; rerun the same query to resume.[/dim]")


@app.command("status")
def show_status(
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        help="Number of recent runs to show",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Show the pending checkpoint and recent runs."""
    from profileharvest.core.orchestrator.runner import CANDIDATES_KEY
    from profileharvest.core.progress.state import STATE_KEY
    from profileharvest.persistence.db import get_session
    from profileharvest.persistence.repo import RunRepository
    from profileharvest.persistence.store import KeyValueStore

    load_settings(config_path)

    with get_session() as session:
        store = KeyValueStore(session)
        snapshot = store.get(STATE_KEY)
        candidates = store.get(CANDIDATES_KEY)

        console.print()
        if snapshot:
            query = snapshot.get("query") or {}
            processed = snapshot.get("total_processed", 0)
            requested = snapshot.get("total_requested", 0)
            pct = round(100 * processed / requested) if requested else 0
            cached = len(candidates.get("items", [])) if isinstance(candidates, dict) else 0

            console.print("[bold]Resumable run[/bold]")
            console.print(
                f"  Query: keywords=\"{query.get('search_keywords', '')}\", "
                f"department=\"{query.get('department', '')}\", "
                f"institution=\"{query.get('institution', '')}\""
            )
            console.print(f"  Progress: {processed}/{requested} ({pct}%)")
            console.print(f"  Cached search results: {cached}")
            console.print(f"  Last checkpoint: {snapshot.get('last_checkpoint_at') or '-'}")
        else:
            console.print("[dim]No resumable run.[/dim]")
        console.print()

        runs = RunRepository(session).get_recent(limit=limit)
        if not runs:
            console.print("[dim]No runs recorded yet.[/dim]")
            return

        table = Table(title="Recent Runs", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Started", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Keywords")
        table.add_column("Found", justify="right")
        table.add_column("Complete", justify="right", style="green")
        table.add_column("Partial", justify="right", style="yellow")
        table.add_column("Resumed", justify="center")

        for run in runs:
            style = {"COMPLETED": "green", "FAILED": "red"}.get(run.status, "yellow")
            table.add_row(
                str(run.id),
                run.started_at.strftime("%Y-%m-%d %H:%M"),
                f"[{style}]{run.status}[/{style}]",
                (run.query or {}).get("search_keywords", ""),
                str(run.candidates_found),
                str(run.records_complete),
                str(run.records_partial),
                "yes" if run.resumed else "",
            )

        console.print(table)


@app.command("reset")
def reset_progress(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Don't ask for confirmation",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Discard the saved checkpoint and cached search results.

    Harvested records are kept; the next run starts from scratch.
    """
    from profileharvest.core.orchestrator.runner import CANDIDATES_KEY
    from profileharvest.core.progress.state import STATE_KEY
    from profileharvest.persistence.db import get_session
    from profileharvest.persistence.store import KeyValueStore

    load_settings(config_path)

    if not yes:
        typer.confirm("Discard saved progress?", abort=True)

    with get_session() as session:
        store = KeyValueStore(session)
        removed_state = store.delete(STATE_KEY)
        removed_candidates = store.delete(CANDIDATES_KEY)

    if removed_state or removed_candidates:
        console.print("[green]OK[/green] Saved progress discarded")
    else:
        console.print("[dim]Nothing to reset.[/dim]")
