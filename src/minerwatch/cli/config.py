from __future__ import annotations

from typing import Annotated

import typer

from minerwatch.config import (
    Settings,
    database_path_from_settings,
    render_settings_toml,
    write_settings,
)

from .common import load_settings_or_exit, resolve_config_path_or_exit

app = typer.Typer(help="Show or create the configuration file", no_args_is_help=True)

SECTIONS = tuple(Settings.model_fields)


@app.command("show")
def show_config(
    section: Annotated[
        str | None,
        typer.Option("--section", "-s", help=f"Only this section ({', '.join(SECTIONS)})"),
    ] = None,
) -> None:
    """Print the effective configuration as TOML."""
    settings = load_settings_or_exit()
    path, exists = resolve_config_path_or_exit(allow_missing=True)

    rendered = render_settings_toml(settings)
    if section is not None:
        if section not in SECTIONS:
            typer.echo(f"Unknown section '{section}'", err=True)
            raise typer.Exit(1)
        # Sections are separated by blank lines, each starting with its comment.
        blocks = rendered.split("\n\n")
        rendered = next(block for block in blocks if f"[{section}]" in block)

    typer.echo(f"Config source: {path if exists else 'defaults'}")
    typer.echo(f"Database: {database_path_from_settings(settings)}")
    typer.echo(rendered)


@app.command("path")
def config_path() -> None:
    """Print where the configuration file is looked up."""
    path, exists = resolve_config_path_or_exit(allow_missing=True)
    typer.echo(f"{path}{'' if exists else ' (missing)'}")


@app.command("init")
def init_config(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config"),
    ] = False,
) -> None:
    """Write a config file holding every default, ready for editing."""
    path, exists = resolve_config_path_or_exit(allow_missing=True)
    if exists and not force:
        typer.echo(f"Config already exists at {path}; use --force to overwrite")
        return

    write_settings(Settings(), path)
    typer.echo(f"Wrote default config to {path}")
