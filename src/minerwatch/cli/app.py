from __future__ import annotations

from typing import Annotated

import typer

from minerwatch.utils.logging import setup_logging

from . import actions as actions_cmd
from . import config as config_cmd
from . import devices as devices_cmd
from .cleanup import register as register_cleanup
from .control import register as register_control
from .history import register as register_history
from .init_cmd import register as register_init
from .logs import register as register_logs
from .poll import register as register_poll
from .scan import register as register_scan
from .watch import register as register_watch

app = typer.Typer(
    help="minerwatch - monitor and babysit a fleet of home crypto miners",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")
app.add_typer(devices_cmd.app, name="devices")
app.add_typer(actions_cmd.app, name="actions")

register_init(app)
register_scan(app)
register_poll(app)
register_watch(app)
register_history(app)
register_logs(app)
register_cleanup(app)
register_control(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log everything, including HTTP and database traces"),
    ] = False,
) -> None:
    """minerwatch CLI."""
    setup_logging(debug=debug)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"minerwatch version {get_version('minerwatch')}")
        raise typer.Exit()
