"""
Dataset commands: export and statistics.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Optional

import orjson
import typer
from rich.console import Console
from rich.table import Table

from profileharvest.cli.common import CONFIG_OPTION_HELP, load_settings

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Inspect and export harvested records",
    no_args_is_help=True,
)

CSV_COLUMNS = [
    "id",
    "profile_url",
    "display_name",
    "first_name",
    "last_name",
    "title",
    "institution",
    "department",
    "faculty_rank",
    "address",
    "phone",
    "fax",
    "email",
    "is_partial",
    "error",
    "collected_at",
]


def _query_fingerprint(keywords: str | None, department: str, institution: str) -> str | None:
    if keywords is None:
        return None
    from profileharvest.core.search.models import Query

    return Query(keyword=keywords, department=department, institution=institution).fingerprint


def _csv_row(record: dict[str, Any]) -> list[Any]:
    row = []
    for column in CSV_COLUMNS:
        value = record.get(column, "")
        if column == "is_partial":
            value = "true" if value else "false"
        row.append("" if value is None else value)
    return row


@app.command("export")
def export_records(
    output: Path = typer.Argument(..., help="Output file path"),
    format: str = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format (inferred from extension if not specified)",
    ),
    keywords: Optional[str] = typer.Option(
        None,
        "--keywords",
        "-k",
        help="Only records harvested for this query",
    ),
    department: str = typer.Option("", "--department", "-d", help="Query department"),
    institution: str = typer.Option("", "--institution", "-i", help="Query institution"),
    complete_only: bool = typer.Option(
        False,
        "--complete-only",
        help="Skip partial records",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Export harvested records to a file.

    Supported formats: csv, json, jsonl

    Examples:
        profileharvest dataset export data/profiles.jsonl
        profileharvest dataset export data/cardiology.csv --keywords cardiology
    """
    from profileharvest.persistence.db import get_session
    from profileharvest.persistence.sink import DatasetSink

    if not format:
        format = output.suffix.lstrip(".").lower()

    if format not in ("csv", "json", "jsonl"):
        err_console.print(f"[red]Unsupported format:[/red] {format}")
        err_console.print("[dim]Supported: csv, json, jsonl[/dim]")
        raise typer.Exit(1)

    load_settings(config_path)
    fingerprint = _query_fingerprint(keywords, department, institution)

    with get_session() as session:
        records = list(
            DatasetSink(session).iter_records(
                query_fingerprint=fingerprint,
                include_partial=not complete_only,
            )
        )

    if not records:
        console.print("[yellow]No records to export.[/yellow]")
        return

    output.parent.mkdir(parents=True, exist_ok=True)

    if format == "csv":
        with open(output, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_COLUMNS)
            for record in records:
                writer.writerow(_csv_row(record))

    elif format == "json":
        output.write_bytes(orjson.dumps(records, option=orjson.OPT_INDENT_2))

    elif format == "jsonl":
        with open(output, "wb") as f:
            for record in records:
                f.write(orjson.dumps(record) + b"\n")

    console.print(f"[green]OK[/green] Exported {len(records)} records to {output}")


@app.command("stats")
def show_stats(
    keywords: Optional[str] = typer.Option(
        None,
        "--keywords",
        "-k",
        help="Only records harvested for this query",
    ),
    department: str = typer.Option("", "--department", "-d", help="Query department"),
    institution: str = typer.Option("", "--institution", "-i", help="Query institution"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Show record counts."""
    from profileharvest.persistence.db import get_session
    from profileharvest.persistence.sink import DatasetSink

    load_settings(config_path)
    fingerprint = _query_fingerprint(keywords, department, institution)

    with get_session() as session:
        counts = DatasetSink(session).count(fingerprint)

    table = Table(title="Dataset", show_header=True, header_style="bold magenta")
    table.add_column("Records", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Complete", f"[green]{counts['complete']}[/green]")
    table.add_row("Partial", f"[yellow]{counts['partial']}[/yellow]")
    table.add_section()
    table.add_row("[bold]Total[/bold]", str(counts["total"]))

    console.print()
    console.print(table)
