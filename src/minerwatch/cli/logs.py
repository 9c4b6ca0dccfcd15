from __future__ import annotations

import contextlib

import typer
from rich.console import Console
from rich.text import Text

from minerwatch.clients.logstream import (
    DEFAULT_MAX_ATTEMPTS,
    LogStreamClient,
    LogStreamState,
)
from minerwatch.errors import LogStreamError
from minerwatch.protocol.loglines import LogEntry, LogLevel, parse_log_line, split_frame

from .common import run_or_exit

LEVEL_STYLES = {
    LogLevel.ERROR: "bold red",
    LogLevel.WARNING: "yellow",
    LogLevel.INFO: "green",
    LogLevel.DEBUG: "cyan",
    LogLevel.VERBOSE: "dim",
}


def render_entry(entry: LogEntry) -> Text:
    text = Text(f"[{entry.received_at:%H:%M:%S}] ")
    text.append(f"{entry.level.value.upper():7} ", style=LEVEL_STYLES[entry.level])
    text.append(f"{entry.component}: ", style="bold")
    text.append(entry.message)
    return text


async def _stream(
    address: str, reconnect: bool, max_attempts: int, console: Console
) -> None:
    client = LogStreamClient(address)
    client.set_auto_reconnect(reconnect, max_attempts=max_attempts)

    def on_frame(frame: str) -> None:
        for line in split_frame(frame):
            console.print(
                render_entry(parse_log_line(line)), highlight=False, soft_wrap=True
            )

    def on_state(state: LogStreamState, attempt: int) -> None:
        if state is LogStreamState.CONNECTED:
            console.print(f"Connected to [green]{address}[/green]\n")
        elif state is LogStreamState.RECONNECTING and attempt:
            console.print(
                f"[yellow]Reconnecting[/yellow] (attempt {attempt}/{max_attempts})"
            )

    client.subscribe(on_frame)
    client.add_state_listener(on_state)
    client.connect()
    try:
        await client.wait_closed()
        state, error, attempt = client.state, client.last_error, client.attempt
    finally:
        await client.close()

    if state is LogStreamState.FAILED or (reconnect and attempt >= max_attempts):
        raise LogStreamError(f"Lost connection to {address}: {error}", state.value)


def logs(
    address: str = typer.Argument(..., help="Miner hostname or IP address"),
    reconnect: bool = typer.Option(
        True, "--reconnect/--no-reconnect", help="Reconnect when the stream drops"
    ),
    max_attempts: int = typer.Option(
        DEFAULT_MAX_ATTEMPTS,
        "--max-attempts",
        min=1,
        help="Reconnect attempts before giving up",
    ),
) -> None:
    """Stream live logs from an AxeOS miner."""
    console = Console()
    console.print(f"Connecting to {address}...")
    console.print("Press Ctrl+C to stop.\n")

    with contextlib.suppress(KeyboardInterrupt):
        run_or_exit(_stream(address, reconnect, max_attempts, console))
    console.print("\n[green]Disconnected.[/green]")


def register(app: typer.Typer) -> None:
    app.command()(logs)
