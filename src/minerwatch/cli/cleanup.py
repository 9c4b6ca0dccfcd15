from __future__ import annotations

import typer
from rich.console import Console

from minerwatch.core.retention import RetentionResult, RetentionService

from .common import build_database, load_settings_or_exit, run_or_exit


def register(app: typer.Typer) -> None:
    @app.command()
    def cleanup(
        days: int | None = typer.Option(
            None, "--days", min=1, help="Override the configured retention period"
        ),
        orphans: bool = typer.Option(
            True, "--orphans/--no-orphans", help="Also delete snapshots of removed devices"
        ),
    ) -> None:
        """Delete expired snapshot history now."""
        console = Console()
        settings = load_settings_or_exit()
        config = settings.retention
        if days is not None:
            config = config.model_copy(update={"days": days})
        db = build_database(settings)

        async def _cleanup() -> RetentionResult:
            async with db:
                service = RetentionService(db, config)
                if orphans:
                    return await service.run_once()
                return RetentionResult(expired=await service.sweep_expired())

        result = run_or_exit(_cleanup())
        console.print(
            f"[green]✓[/green] Removed {result.expired} snapshot(s) older than "
            f"{config.days} days and {result.orphans} orphan(s)"
        )
