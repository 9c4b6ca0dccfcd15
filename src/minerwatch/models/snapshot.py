"""Snapshot and watchdog action models."""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class PoolInfo(BaseModel):
    """Stratum configuration in effect at poll time."""

    model_config = {"frozen": True}

    url: str | None = None
    port: int | None = None
    user: str | None = None
    fallback_url: str | None = None
    fallback_port: int | None = None
    fallback_user: str | None = None
    using_fallback: bool | None = None
    status: str | None = None


class DeviceSnapshot(BaseModel):
    """One normalized reading of a device.

    Metric fields are ``None`` when the device did not report them, so a
    reported zero stays distinguishable from "not reported". A failed poll is
    recorded with ``failed=True`` and no metric values at all.
    """

    model_config = {"frozen": True}

    id: int | None = None
    device_id: str
    timestamp_ms: int = Field(default_factory=now_ms)
    failed: bool = False

    hash_rate: float | None = None
    power: float | None = None
    temperatures: dict[str, float] = Field(default_factory=dict)
    fan_rpm: int | None = None
    fan_percent: int | None = None
    pool: PoolInfo | None = None
    shares_accepted: int | None = None
    shares_rejected: int | None = None
    uptime_seconds: int | None = None
    best_diff: str | None = None
    frequency: float | None = None
    voltage: float | None = None

    @classmethod
    def failure(cls, device_id: str, timestamp_ms: int | None = None) -> DeviceSnapshot:
        return cls(
            device_id=device_id,
            timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms(),
            failed=True,
        )

    @property
    def primary_temperature(self) -> float | None:
        if not self.temperatures:
            return None
        return self.temperatures.get("asic", next(iter(self.temperatures.values())))


class WatchdogAction(str, Enum):
    RESTART_MINER = "restart_miner"


class WatchdogActionLogEntry(BaseModel):
    """Record of a corrective action taken by the watchdog."""

    id: int | None = None
    device_id: str
    timestamp_ms: int = Field(default_factory=now_ms)
    action: WatchdogAction = WatchdogAction.RESTART_MINER
    reason: str
    is_read: bool = False
