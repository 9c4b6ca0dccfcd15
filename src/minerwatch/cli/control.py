from __future__ import annotations

from collections.abc import Awaitable, Callable

import aiohttp
import typer
from rich.console import Console

from minerwatch.core.adapter import DeviceAdapter, adapter_for
from minerwatch.errors import ConfigurationError
from minerwatch.models import Device

from .common import build_database, load_settings_or_exit, run_or_exit

def _control(device_id: str, action: Callable[[DeviceAdapter], Awaitable[None]]) -> Device:
    settings = load_settings_or_exit()
    db = build_database(settings)

    async def _run() -> Device:
        async with db:
            device = await db.get_device(device_id)
        if device is None:
            raise ConfigurationError(f"Device '{device_id}' not found")
        async with aiohttp.ClientSession() as session:
            adapter = adapter_for(
                device,
                session=session,
                timeout=settings.polling.timeout,
                legacy_port=settings.scanning.legacy_port,
            )
            try:
                await action(adapter)
            finally:
                await adapter.close()
        return device

    return run_or_exit(_run())

def restart(device_id: str = typer.Argument(..., help="Device ID")) -> None:
    """Restart a miner."""

    async def _restart(adapter: DeviceAdapter) -> None:
        await adapter.restart()

    device = _control(device_id, _restart)
    Console().print(f"[green]✓[/green] Restart sent to '{device.name}'")

def set_fan(
    device_id: str = typer.Argument(..., help="Device ID"),
    percent: int = typer.Argument(..., min=0, max=100, help="Fan speed in percent"),
) -> None:
    """Set a fixed fan speed."""

    async def _set_fan(adapter: DeviceAdapter) -> None:
        await adapter.set_fan_speed(percent)

    device = _control(device_id, _set_fan)
    Console().print(f"[green]✓[/green] Fan of '{device.name}' set to {percent}%")

def set_mode(
    device_id: str = typer.Argument(..., help="Device ID"),
    mode: str = typer.Argument(..., help="Performance mode (e.g. 0, 1, 2)"),
) -> None:
    """Switch the performance mode of a legacy miner."""

    async def _set_mode(adapter: DeviceAdapter) -> None:
        await adapter.set_performance_mode(mode)

    device = _control(device_id, _set_mode)
    Console().print(f"[green]✓[/green] Performance mode of '{device.name}' set to {mode}")

def set_pool(
    device_id: str = typer.Argument(..., help="Device ID"),
    url: str = typer.Argument(..., help="Pool host, without scheme"),
    port: int = typer.Option(3333, "--port", min=1, max=65535, help="Pool port"),
    user: str = typer.Option(..., "--user", "-u", help="Worker name"),
    password: str = typer.Option("x", "--password", help="Worker password"),
) -> None:
    """Point a miner at a different stratum pool."""

    async def _set_pool(adapter: DeviceAdapter) -> None:
        await adapter.update_pool(url, port, user, password)

    device = _control(device_id, _set_pool)
    Console().print(f"[green]✓[/green] '{device.name}' now mines on {url}:{port}")

def register(app: typer.Typer) -> None:
    app.command()(restart)
    app.command("set-fan")(set_fan)
    app.command("set-mode")(set_mode)
    app.command("set-pool")(set_pool)
