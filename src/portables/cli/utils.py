"""
CLI utility helpers: store wiring and output formatting.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from portables.core.cache import RedisCache
from portables.core.checkpoints import CheckpointStore
from portables.core.jobs import JobStore
from portables.core.logging import configure_logging
from portables.core.settings import PortablesSettings, get_settings
from portables.orchestration.cancellation import CancellationRegistry

console = Console()
err_console = Console(stderr=True)


# ── Context helper ───────────────────────────────────────────────────────


@dataclass
class CliContext:
    settings: PortablesSettings
    conn: sqlite3.Connection
    jobs: JobStore
    checkpoints: CheckpointStore
    cancellations: CancellationRegistry


def make_context() -> CliContext:
    """Open the SQLite stores named by settings and configure logging."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    settings.database.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(settings.database), check_same_thread=False)
    if settings.cancellation_url:
        cancellations = CancellationRegistry(RedisCache(settings.cancellation_url))
    else:
        cancellations = CancellationRegistry()
    return CliContext(
        settings=settings,
        conn=conn,
        jobs=JobStore(conn),
        checkpoints=CheckpointStore(conn),
        cancellations=cancellations,
    )


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title)
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*["" if v is None else str(v) for v in row])
    console.print(table)


def fail(message: str, code: int = 1) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)
