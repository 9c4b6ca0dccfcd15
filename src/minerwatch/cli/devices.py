from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from minerwatch.core.discovery import identify, probe_device
from minerwatch.models import Device, ProtocolFamily
from minerwatch.utils.redaction import Redactor

from .common import build_database, load_settings_or_exit, run_or_exit, status_label

app = typer.Typer(help="Manage monitored miners", no_args_is_help=True)


def list_devices(
    redact: bool = typer.Option(False, "--redact", help="Redact addresses in output"),
) -> None:
    """List monitored miners."""
    settings = load_settings_or_exit()
    db = build_database(settings)

    async def _list() -> list[Device]:
        async with db:
            return await db.list_devices()

    devices = run_or_exit(_list())
    console = Console()

    if not devices:
        console.print("No miners registered.")
        console.print("Use 'minerwatch devices add' or 'minerwatch scan' to find some.")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("Device ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Address")
    table.add_column("Type")
    table.add_column("Protocol")
    table.add_column("Status")

    for device in devices:
        table.add_row(
            redactor.redact_device_id(device.device_id),
            device.name,
            redactor.redact_ip(device.address),
            device.miner_type.value,
            device.protocol_family.value,
            status_label(device.is_offline),
        )

    console.print(table)


def add_device(
    address: str = typer.Argument(..., help="Miner IP address or hostname"),
    family: ProtocolFamily | None = typer.Option(
        None,
        "--family",
        "-f",
        help="Protocol family; probed when omitted",
    ),
    name: str | None = typer.Option(None, "--name", help="Display name override"),
) -> None:
    """Identify a miner and start monitoring it."""
    settings = load_settings_or_exit()
    db = build_database(settings)
    console = Console()

    async def _add() -> Device | None:
        if family is None:
            device = await probe_device(address, settings.scanning)
        else:
            device = await identify(address, family, settings.scanning)
        if device is None:
            return None
        if name:
            device = device.model_copy(update={"name": name})
        async with db:
            return await db.upsert_device(device)

    stored = run_or_exit(_add())
    if stored is None:
        console.print(f"[red]Error:[/red] no miner answered at {address}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Added '{stored.name}' ({stored.miner_type.value}) "
        f"as {stored.device_id}"
    )


def remove_device(
    device_id: str = typer.Argument(..., help="Device ID to remove"),
) -> None:
    """Stop monitoring a miner and delete its history."""
    settings = load_settings_or_exit()
    db = build_database(settings)

    async def _remove() -> bool:
        async with db:
            return await db.delete_device(device_id)

    console = Console()
    if run_or_exit(_remove()):
        console.print(f"[green]✓[/green] Removed device '{device_id}'")
    else:
        console.print(f"[yellow]![/yellow] Device '{device_id}' not found")
        raise typer.Exit(1)


app.command("list")(list_devices)
app.command("add")(add_device)
app.command("remove")(remove_device)
