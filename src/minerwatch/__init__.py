"""minerwatch - poll, record and watchdog a fleet of Bitaxe, NerdQAxe and Avalon miners."""

from __future__ import annotations

from importlib.metadata import version

from .config import PollingConfig, RetentionConfig, Settings, WatchdogConfig, get_settings
from .core import FleetSupervisor, RetentionService, Watchdog
from .errors import MinerWatchError
from .models import Device, DeviceSnapshot, ProtocolFamily, WatchdogActionLogEntry
from .storage import Database

__all__ = [
    "Database",
    "Device",
    "DeviceSnapshot",
    "FleetSupervisor",
    "MinerWatchError",
    "PollingConfig",
    "ProtocolFamily",
    "RetentionConfig",
    "RetentionService",
    "Settings",
    "Watchdog",
    "WatchdogActionLogEntry",
    "WatchdogConfig",
    "__version__",
    "get_settings",
]

__version__ = version("minerwatch")
