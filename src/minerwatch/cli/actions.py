from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from minerwatch.models import WatchdogActionLogEntry

from .common import build_database, format_timestamp, load_settings_or_exit, run_or_exit

app = typer.Typer(help="Review watchdog actions", no_args_is_help=True)


def list_actions(
    device_id: str | None = typer.Option(None, "--device", help="Only this device"),
    unread: bool = typer.Option(False, "--unread", help="Only unacknowledged actions"),
) -> None:
    """List watchdog actions, newest first."""
    settings = load_settings_or_exit()
    db = build_database(settings)

    async def _list() -> list[WatchdogActionLogEntry]:
        async with db:
            return await db.list_actions(device_id, unread_only=unread)

    entries = run_or_exit(_list())
    console = Console()
    if not entries:
        console.print("No watchdog actions recorded.")
        return

    table = Table()
    table.add_column("ID", justify="right")
    table.add_column("Time")
    table.add_column("Device", style="cyan")
    table.add_column("Action")
    table.add_column("Reason")
    table.add_column("Read")

    for entry in entries:
        table.add_row(
            str(entry.id),
            format_timestamp(entry.timestamp_ms),
            entry.device_id,
            entry.action.value,
            entry.reason,
            "" if entry.is_read else "[yellow]new[/yellow]",
        )
    console.print(table)


def ack_actions(
    action_id: int | None = typer.Argument(None, help="Action ID to acknowledge"),
    all_: bool = typer.Option(False, "--all", help="Acknowledge every action"),
) -> None:
    """Mark watchdog actions as read."""
    console = Console()
    if action_id is None and not all_:
        console.print("[red]Error:[/red] pass an action ID or --all")
        raise typer.Exit(1)

    settings = load_settings_or_exit()
    db = build_database(settings)

    async def _ack() -> int:
        async with db:
            if all_ or action_id is None:
                return await db.mark_all_actions_read()
            return int(await db.mark_action_read(action_id))

    count = run_or_exit(_ack())
    if count == 0 and not all_:
        console.print(f"[yellow]![/yellow] Action {action_id} not found")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Acknowledged {count} action(s)")


app.command("list")(list_actions)
app.command("ack")(ack_actions)
