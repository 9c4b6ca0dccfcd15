"""cgminer-style (Avalon) device info model."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AvalonDeviceInfo(BaseModel):
    """Status merged from the ``summary``, ``pools``, ``estats`` and ``version`` replies.

    Hash rates are in GH/s. The cgminer API exposes no MAC address, so
    ``mac_addr`` is always empty and callers key the device by address.
    """

    model_config = {"frozen": True}

    hostname: str
    mac_addr: str = ""
    device_model: str = "Avalon"
    firmware_version: str = "Unknown"

    hash_rate: float = 0.0
    hash_rate_5s: float = 0.0
    hash_rate_1m: float = 0.0

    shares_accepted: int = 0
    shares_rejected: int = 0
    stale_shares: int = 0
    hardware_errors: int = 0

    stratum_url: str = ""
    stratum_port: int = 3333
    stratum_user: str = ""
    pool_status: str = "Unknown"

    temperature: float = 0.0
    temperatures: list[float] = Field(default_factory=list)
    intake_temp: float = 0.0
    chip_temp_max: float = 0.0
    chip_temp_min: float = 0.0
    fan_speed: int = 0
    fan_speed_percent: int = 0
    voltage: float = 0.0
    frequency: float = 0.0
    power: float = 0.0

    uptime_seconds: int = 0
    asic_count: int = 0
    chain_count: int = 1

    best_diff: str | None = None
    best_share: int = 0
