"""Data models for minerwatch."""

from minerwatch.models.avalon import AvalonDeviceInfo
from minerwatch.models.axeos import AxeOSDeviceInfo, AxeOSSettings
from minerwatch.models.device import (
    OFFLINE_THRESHOLD,
    Device,
    MinerType,
    ProtocolFamily,
    avalon_miner_type,
    axeos_miner_type,
)
from minerwatch.models.snapshot import (
    DeviceSnapshot,
    PoolInfo,
    WatchdogAction,
    WatchdogActionLogEntry,
    now_ms,
)

__all__ = [
    "OFFLINE_THRESHOLD",
    "AvalonDeviceInfo",
    "AxeOSDeviceInfo",
    "AxeOSSettings",
    "Device",
    "DeviceSnapshot",
    "MinerType",
    "PoolInfo",
    "ProtocolFamily",
    "WatchdogAction",
    "WatchdogActionLogEntry",
    "avalon_miner_type",
    "axeos_miner_type",
    "now_ms",
]
