from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from minerwatch.config import Settings, write_settings

from .common import (
    build_database,
    load_settings_or_exit,
    resolve_config_path_or_exit,
    run_or_exit,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def init(
        data_dir: Annotated[
            Path | None,
            typer.Option("--data-dir", "--path", help="Custom data directory"),
        ] = None,
        write_config: Annotated[
            bool,
            typer.Option("--write-config", help="Also write a default config when none exists"),
        ] = False,
    ) -> None:
        """Create the snapshot database (an existing one is kept as is)."""
        console = Console()

        settings = load_settings_or_exit()
        db = build_database(settings, data_dir=data_dir)

        async def _init() -> tuple[int, int]:
            async with db:
                return len(await db.list_devices()), await db.count_snapshots()

        devices, snapshots = run_or_exit(_init())
        console.print(f"[green]✓[/green] Database ready at: {db.path}")
        if devices or snapshots:
            console.print(f"  • {devices} miner(s), {snapshots} snapshot(s) already stored")

        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)
        if config_exists:
            console.print(f"  • Configuration: {config_path}")
        elif write_config:
            write_settings(Settings(), config_path)
            console.print(f"  • Wrote default config to {config_path}")
        else:
            console.print("\nNo config file. Run 'minerwatch config init' to create one.")
