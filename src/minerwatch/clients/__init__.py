"""Network clients for the supported device families."""

from minerwatch.clients.http import AxeOSClient
from minerwatch.clients.logstream import LogStreamClient, LogStreamState
from minerwatch.clients.tcp import AvalonClient

__all__ = ["AvalonClient", "AxeOSClient", "LogStreamClient", "LogStreamState"]
