from __future__ import annotations

import asyncio
import contextlib

import typer
from rich.console import Console

from minerwatch.core.retention import RetentionService
from minerwatch.core.supervisor import FleetSupervisor
from minerwatch.models import Device, DeviceSnapshot
from minerwatch.utils.formatting import format_hashrate

from .common import (
    build_database,
    format_optional,
    format_timestamp,
    load_settings_or_exit,
    run_or_exit,
)


def _line(device: Device, snapshot: DeviceSnapshot) -> str:
    stamp = format_timestamp(snapshot.timestamp_ms)
    if snapshot.failed:
        state = "[red]offline[/red]" if device.is_offline else "[yellow]poll failed[/yellow]"
        return f"{stamp} [green]{device.name}[/green] {state}"
    return (
        f"{stamp} [green]{device.name}[/green] "
        f"{format_hashrate(snapshot.hash_rate)} "
        f"{format_optional(snapshot.power, ' W')} "
        f"{format_optional(snapshot.primary_temperature, ' °C')}"
    )


def register(app: typer.Typer) -> None:
    @app.command()
    def watch(
        retention: bool = typer.Option(
            True, "--retention/--no-retention", help="Prune old snapshots while watching"
        ),
    ) -> None:
        """Poll every miner continuously until interrupted."""
        console = Console()
        settings = load_settings_or_exit()
        db = build_database(settings)

        async def _watch() -> None:
            async with db:
                supervisor = FleetSupervisor(db, settings)
                supervisor.add_listener(
                    lambda device, snapshot: console.print(
                        _line(device, snapshot), highlight=False
                    )
                )
                cleaner = RetentionService(db, settings.retention)
                await supervisor.start()
                if retention:
                    cleaner.start()
                console.print(
                    f"Watching {len(supervisor.devices)} miner(s) every "
                    f"{settings.polling.interval:g}s. Press Ctrl+C to stop.\n"
                )
                try:
                    await asyncio.Event().wait()
                finally:
                    try:
                        await cleaner.stop()
                    finally:
                        await supervisor.stop()

        with contextlib.suppress(KeyboardInterrupt):
            run_or_exit(_watch())
        console.print("\n[green]Stopped.[/green]")
