from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console

from minerwatch.config import (
    Settings,
    database_file,
    database_path_from_settings,
    get_settings,
    resolve_config_path,
)
from minerwatch.errors import MinerWatchError
from minerwatch.storage import Database

T = TypeVar("T")


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = database_file(data_dir) if data_dir else database_path_from_settings(settings)
    return Database(path)


def run_or_exit(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` to completion, turning minerwatch errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except MinerWatchError as exc:
        Console(stderr=True).print(f"[red]Error:[/red] {exc.reason}")
        raise typer.Exit(1) from None


def format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_optional(value: float | int | None, unit: str = "", digits: int = 1) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.{digits}f}{unit}"
    return f"{value}{unit}"


def status_label(offline: bool) -> str:
    return "[red]offline[/red]" if offline else "[green]online[/green]"
