"""
Logging setup for ProfileHarvest.

Console output goes through Rich; the optional log file gets one JSON
object per line with the harvest context (run, query, record, batch)
copied from the record.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from rich.console import Console

ROOT_LOGGER = "profileharvest"

# Extra record attributes copied into JSON log lines
CONTEXT_FIELDS = ("run_id", "query", "record_id", "batch", "url", "attempt")

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=str).decode("utf-8")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any harvest context attached."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json_dumps(entry)


class RichConsoleHandler(logging.Handler):
    """Colours records by level and tags batch progress lines."""

    def __init__(self, console: "Console | None" = None, level: int = logging.INFO):
        super().__init__(level)
        if console is None:
            from rich.console import Console

            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            text = self.format(record)
            style = LEVEL_STYLES.get(record.levelno)
            if style:
                text = f"[{style}]{text}[/{style}]"
            batch = getattr(record, "batch", None)
            if batch is not None:
                text = f"[cyan]\\[batch {batch}][/cyan] {text}"

            self.console.print(text, markup=True, highlight=False)
            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


def _console_handler(level: int, rich_console: bool) -> logging.Handler:
    if rich_console:
        handler: logging.Handler = RichConsoleHandler(level=level)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def _file_handler(log_file: Path | str, json_format: bool) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    # The file keeps everything; the console level only filters the terminal
    handler.setLevel(logging.DEBUG)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``profileharvest`` logger tree.

    Replaces any handlers from an earlier call, so it is safe to run once
    per CLI command.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(numeric_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.addHandler(_console_handler(numeric_level, rich_console))
    if log_file:
        root.addHandler(_file_handler(log_file, json_format))
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``profileharvest`` root, e.g. ``get_logger("runner")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


class ContextualLogger(logging.LoggerAdapter):
    """Adds the run id and query to every record it emits.

    Per-call ``extra`` values are kept; the run context is added on top.
    """

    def __init__(
        self,
        logger: logging.Logger,
        run_id: int | None = None,
        query: dict[str, str] | None = None,
    ):
        super().__init__(logger, {})
        self.run_id = run_id
        self.query = query

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        if self.run_id is not None:
            extra["run_id"] = self.run_id
        if self.query is not None:
            extra["query"] = self.query
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(
        self,
        run_id: int | None = None,
        query: dict[str, str] | None = None,
    ) -> "ContextualLogger":
        return ContextualLogger(
            self.logger,
            run_id=run_id if run_id is not None else self.run_id,
            query=query if query is not None else self.query,
        )
