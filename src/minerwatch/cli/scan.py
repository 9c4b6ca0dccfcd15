from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.table import Table

from minerwatch.core.discovery import detect_local_network, scan_network
from minerwatch.models import Device
from minerwatch.utils.redaction import Redactor

from .common import build_database, load_settings_or_exit, run_or_exit

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    @app.command()
    def scan(
        network: str | None = typer.Argument(
            None,
            help=(
                "Network to scan (e.g., 192.168.1.0/24). "
                "Uses config default if omitted."
            ),
        ),
        save: bool = typer.Option(False, help="Register every miner found"),
        redact: bool = typer.Option(
            False,
            "--redact",
            help="Redact sensitive values in output",
        ),
    ) -> None:
        """Scan a network for AxeOS and Avalon miners."""
        console = Console()

        settings = load_settings_or_exit()
        db = build_database(settings)

        if network is None:
            network = settings.scanning.default_network
            if network == "auto":
                try:
                    network = detect_local_network()
                except RuntimeError as exc:
                    console.print(f"[red]Error:[/red] {exc}")
                    raise typer.Exit(1) from None
            console.print(f"Using network from config: {network}")

        console.print(f"Scanning {network} for miners...")
        logger.info(
            "Scan settings: timeout=%.2fs, parallel_scans=%d",
            settings.scanning.timeout,
            settings.scanning.parallel_scans,
        )

        async def _scan() -> tuple[list[Device], set[str]]:
            found = await scan_network(network, settings.scanning)
            async with db:
                if save:
                    for device in found:
                        await db.upsert_device(device)
                    await db.merge_duplicate_devices()
                return found, await db.device_ids()

        try:
            devices, known = run_or_exit(_scan())
        except ValueError as exc:
            console.print(f"[red]Error:[/red] invalid network: {exc}")
            raise typer.Exit(1) from None

        if not devices:
            console.print("No miners found.")
            return

        redactor = Redactor(enabled=redact)
        table = Table()
        table.add_column("IP", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Device ID")
        table.add_column("Type")
        table.add_column("Protocol")
        table.add_column("Registered", style="yellow")

        for device in devices:
            table.add_row(
                redactor.redact_ip(device.address),
                device.name,
                redactor.redact_device_id(device.device_id),
                device.miner_type.value,
                device.protocol_family.value,
                "yes" if device.device_id in known else "",
            )

        console.print(table)
        console.print(f"\n[green]Found {len(devices)} miner(s)[/green]")
        if save:
            console.print(f"[green]✓[/green] Saved to {db.path}")
