"""AxeOS JSON API payload models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from minerwatch.utils.formatting import format_difficulty


class AxeOSDeviceInfo(BaseModel):
    """Decoded ``/api/system/info`` payload.

    Unknown keys are ignored. Optional metrics stay ``None`` when absent.
    """

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    hostname: str = ""
    power: float | None = None
    hash_rate: float | None = Field(default=None, alias="hashRate")
    best_diff: str | None = Field(default=None, alias="bestDiff")
    best_session_diff: str | None = Field(default=None, alias="bestSessionDiff")

    stratum_user: str | None = Field(default=None, alias="stratumUser")
    fallback_stratum_user: str | None = Field(default=None, alias="fallbackStratumUser")
    stratum_url: str | None = Field(default=None, alias="stratumURL")
    stratum_port: int | None = Field(default=None, alias="stratumPort")
    fallback_stratum_url: str | None = Field(default=None, alias="fallbackStratumURL")
    fallback_stratum_port: int | None = Field(default=None, alias="fallbackStratumPort")
    is_using_fallback_stratum: bool | None = Field(
        default=None, alias="isUsingFallbackStratum"
    )

    uptime_seconds: int | None = Field(default=None, alias="uptimeSeconds")
    shares_accepted: int | None = Field(default=None, alias="sharesAccepted")
    shares_rejected: int | None = Field(default=None, alias="sharesRejected")

    version: str | None = None
    axeos_version: str | None = Field(default=None, alias="axeOSVersion")
    asic_model: str | None = Field(default=None, alias="ASICModel")
    frequency: float | None = None
    voltage: float | None = None
    core_voltage: int | None = Field(default=None, alias="coreVoltage")
    core_voltage_actual: int | None = Field(default=None, alias="coreVoltageActual")
    temp: float | None = None
    vr_temp: float | None = Field(default=None, alias="vrTemp")
    fanrpm: int | None = None
    fanspeed: float | None = None
    autofanspeed: int | None = None
    flipscreen: int | None = None
    invertscreen: int | None = None
    invertfanpolarity: int | None = None
    overheat_mode: int | None = None
    mac_addr: str | None = Field(default=None, alias="macAddr")
    board_version: str | None = Field(default=None, alias="boardVersion")
    device_model: str | None = Field(default=None, alias="deviceModel")

    @field_validator("best_diff", "best_session_diff", mode="before")
    @classmethod
    def _coerce_difficulty(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return format_difficulty(int(value))
        return value

    @field_validator("is_using_fallback_stratum", mode="before")
    @classmethod
    def _coerce_fallback_flag(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value != 0
        return value

    @field_validator("board_version", mode="before")
    @classmethod
    def _coerce_board_version(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class AxeOSSettings(BaseModel):
    """Partial settings update for ``PATCH /api/system``.

    Only fields explicitly set are serialized, so an unset field never resets
    the device's current value.
    """

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    stratum_url: str | None = Field(default=None, alias="stratumURL")
    fallback_stratum_url: str | None = Field(default=None, alias="fallbackStratumURL")
    stratum_user: str | None = Field(default=None, alias="stratumUser")
    stratum_password: str | None = Field(default=None, alias="stratumPassword")
    fallback_stratum_user: str | None = Field(default=None, alias="fallbackStratumUser")
    fallback_stratum_password: str | None = Field(
        default=None, alias="fallbackStratumPassword"
    )
    stratum_port: int | None = Field(default=None, ge=1, le=65535, alias="stratumPort")
    fallback_stratum_port: int | None = Field(
        default=None, ge=1, le=65535, alias="fallbackStratumPort"
    )
    ssid: str | None = None
    wifi_pass: str | None = Field(default=None, alias="wifiPass")
    hostname: str | None = None
    core_voltage: int | None = Field(default=None, ge=0, alias="coreVoltage")
    frequency: int | None = Field(default=None, ge=0)
    flipscreen: int | None = Field(default=None, ge=0, le=1)
    overheat_mode: int | None = Field(default=None, ge=0)
    overclock_enabled: int | None = Field(default=None, ge=0, le=1, alias="overclockEnabled")
    invertscreen: int | None = Field(default=None, ge=0, le=1)
    invertfanpolarity: int | None = Field(default=None, ge=0, le=1)
    autofanspeed: int | None = Field(default=None, ge=0, le=1)
    fanspeed: int | None = Field(default=None, ge=0, le=100)
