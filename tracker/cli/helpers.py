"""Shared CLI helper utilities.

This module provides common utilities used across CLI command modules:
- console: Shared Rich Console instance
- open_session: Per-invocation database connection
- fail: Print an error and exit 1
- format_date / print_json: Output helpers

Usage:
    from tracker.cli.helpers import console, open_session, fail
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from tracker.core.config import GlobalConfig, configure_logging, load_environment
from tracker.core.models import parse_timestamp
from tracker.persistence.database import Database

logger = logging.getLogger(__name__)

# Shared console instance for all CLI modules
console = Console()

# Set by the root callback
state = {"verbose": False}


def load_config() -> GlobalConfig:
    """Read configuration fresh for this invocation."""
    load_environment()
    config = GlobalConfig()
    configure_logging(config, level="DEBUG" if state["verbose"] else "WARNING")
    return config


@contextmanager
def open_session() -> Iterator[Any]:
    """Open the tracker database for one command and close it afterwards.

    Yields:
        sqlite3.Connection with the schema up to date
    """
    config = load_config()
    db = Database.from_config(config)
    try:
        db.initialize()
        with db.session() as conn:
            yield conn
    finally:
        db.close()


def fail(error: Any) -> NoReturn:
    """Print an error verbatim and exit with status 1."""
    console.print(f"[red]Error:[/red] {escape(str(error))}", highlight=False)
    raise typer.Exit(1)


def parse_due(value: Optional[str]) -> Optional[datetime]:
    """Parse a --due option (date or RFC-3339 timestamp).

    Raises:
        typer.BadParameter: If the value is not a date
    """
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid date: {value} (expected YYYY-MM-DD or RFC-3339)")


def format_date(date_str: str | None, length: int = 10) -> str:
    """Safely extract date portion from an ISO datetime string.

    Examples:
        >>> format_date("2024-01-15T10:30:00.000000+00:00")
        '2024-01-15'
        >>> format_date(None)
        ''
    """
    if not date_str or len(date_str) < length:
        return ""
    return date_str[:length]


def print_json(data: Any) -> None:
    """Print JSON without Rich wrapping, so output stays parseable."""
    typer.echo(json.dumps(data, indent=2))


def check_format(format: str) -> None:
    if format not in ("table", "json"):
        raise typer.BadParameter(f"Unknown format '{format}'. Use table or json.")
