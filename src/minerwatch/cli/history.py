from __future__ import annotations

import typer
from rich.console import Console

from minerwatch.models import Device, DeviceSnapshot, now_ms

from .common import build_database, load_settings_or_exit, run_or_exit
from .poll import snapshot_table

HOUR_MS = 60 * 60 * 1000


def register(app: typer.Typer) -> None:
    @app.command()
    def history(
        device_id: str = typer.Argument(..., help="Device ID"),
        since_hours: float = typer.Option(
            24.0, "--since-hours", min=0.0, help="How far back to look"
        ),
        limit: int | None = typer.Option(None, "--limit", "-n", min=1, help="Max rows"),
    ) -> None:
        """Show recorded snapshots for one miner, oldest first."""
        console = Console()
        settings = load_settings_or_exit()
        db = build_database(settings)

        async def _history() -> tuple[Device | None, list[DeviceSnapshot]]:
            async with db:
                device = await db.get_device(device_id)
                if device is None:
                    return None, []
                since = now_ms() - int(since_hours * HOUR_MS)
                return device, await db.query_snapshots(device_id, since_ms=since, limit=limit)

        device, snapshots = run_or_exit(_history())
        if device is None:
            console.print(f"[yellow]![/yellow] Device '{device_id}' not found")
            raise typer.Exit(1)
        if not snapshots:
            console.print(f"No snapshots for '{device.name}' in the last {since_hours:g}h.")
            return

        console.print(snapshot_table([(device, snapshot) for snapshot in snapshots]))
