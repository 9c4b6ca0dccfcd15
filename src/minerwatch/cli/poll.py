from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from minerwatch.core.supervisor import FleetSupervisor
from minerwatch.models import Device, DeviceSnapshot
from minerwatch.utils.formatting import format_hashrate

from .common import (
    build_database,
    format_optional,
    format_timestamp,
    load_settings_or_exit,
    run_or_exit,
    status_label,
)


def snapshot_table(rows: list[tuple[Device, DeviceSnapshot]]) -> Table:
    table = Table()
    table.add_column("Name", style="green")
    table.add_column("Time")
    table.add_column("Hash rate", justify="right")
    table.add_column("Power", justify="right")
    table.add_column("Temp", justify="right")
    table.add_column("Fan", justify="right")
    table.add_column("Shares", justify="right")
    table.add_column("Status")

    for device, snapshot in rows:
        status = status_label(device.is_offline)
        if snapshot.failed:
            shares = "-"
            if not device.is_offline:
                status = "[yellow]failed[/yellow]"
        else:
            shares = f"{snapshot.shares_accepted or 0}/{snapshot.shares_rejected or 0}"
        table.add_row(
            device.name,
            format_timestamp(snapshot.timestamp_ms),
            format_hashrate(snapshot.hash_rate),
            format_optional(snapshot.power, " W"),
            format_optional(snapshot.primary_temperature, " °C"),
            format_optional(snapshot.fan_rpm, " rpm"),
            shares,
            status,
        )
    return table


def register(app: typer.Typer) -> None:
    @app.command()
    def poll(
        device_id: str | None = typer.Argument(
            None, help="Poll only this device; all devices when omitted"
        ),
    ) -> None:
        """Poll miners once and record the readings."""
        console = Console()
        settings = load_settings_or_exit()
        db = build_database(settings)

        async def _poll() -> list[tuple[Device, DeviceSnapshot]]:
            async with db:
                supervisor = FleetSupervisor(db, settings)
                await supervisor.load()
                ids = [d.device_id for d in supervisor.devices]
                if device_id is not None:
                    if supervisor.get_device(device_id) is None:
                        return []
                    ids = [device_id]
                rows: list[tuple[Device, DeviceSnapshot]] = []
                supervisor.add_listener(lambda device, snapshot: rows.append((device, snapshot)))
                try:
                    for current in ids:
                        await supervisor.poll_once(current)
                finally:
                    await supervisor.stop()
                return rows

        rows = run_or_exit(_poll())
        if not rows:
            if device_id is not None:
                console.print(f"[yellow]![/yellow] Device '{device_id}' not found")
                raise typer.Exit(1)
            console.print("No miners registered.")
            return

        console.print(snapshot_table(rows))
