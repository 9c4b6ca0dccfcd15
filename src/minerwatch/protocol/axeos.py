"""Mapping between AxeOS JSON payloads and minerwatch models."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from minerwatch.errors import ConfigurationError, MalformedResponseError
from minerwatch.models import (
    AxeOSDeviceInfo,
    AxeOSSettings,
    DeviceSnapshot,
    PoolInfo,
)

logger = logging.getLogger(__name__)


def decode_device_info(payload: Any) -> AxeOSDeviceInfo:
    """Validate a ``/api/system/info`` body.

    Fields whose type does not match are dropped rather than failing the
    whole payload; only a body that is not a JSON object is malformed.
    """
    if not isinstance(payload, Mapping):
        raise MalformedResponseError(
            f"Expected a JSON object from device, got {type(payload).__name__}"
        )

    data = dict(payload)
    try:
        return AxeOSDeviceInfo.model_validate(data)
    except ValidationError as exc:
        bad_keys = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        logger.debug("Dropping unparseable fields from device info: %s", bad_keys)

    for key in bad_keys:
        data.pop(key, None)
    try:
        return AxeOSDeviceInfo.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"Unusable device info payload: {exc}") from exc


def encode_settings(settings: AxeOSSettings | Mapping[str, Any]) -> dict[str, Any]:
    """Serialize only the supplied settings, using the device's field names."""
    if not isinstance(settings, AxeOSSettings):
        try:
            settings = AxeOSSettings.model_validate(dict(settings))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings: {exc}") from exc

    body = settings.model_dump(by_alias=True, exclude_none=True)
    if not body:
        raise ConfigurationError("Settings update contains no fields")
    return body


def snapshot_from_info(
    device_id: str, info: AxeOSDeviceInfo, timestamp_ms: int
) -> DeviceSnapshot:
    temperatures: dict[str, float] = {}
    if info.temp is not None:
        temperatures["asic"] = info.temp
    if info.vr_temp is not None:
        temperatures["vr"] = info.vr_temp

    return DeviceSnapshot(
        device_id=device_id,
        timestamp_ms=timestamp_ms,
        hash_rate=info.hash_rate,
        power=info.power,
        temperatures=temperatures,
        fan_rpm=info.fanrpm,
        fan_percent=int(info.fanspeed) if info.fanspeed is not None else None,
        pool=PoolInfo(
            url=info.stratum_url,
            port=info.stratum_port,
            user=info.stratum_user,
            fallback_url=info.fallback_stratum_url,
            fallback_port=info.fallback_stratum_port,
            fallback_user=info.fallback_stratum_user,
            using_fallback=info.is_using_fallback_stratum,
        ),
        shares_accepted=info.shares_accepted,
        shares_rejected=info.shares_rejected,
        uptime_seconds=info.uptime_seconds,
        best_diff=info.best_diff,
        frequency=info.frequency,
        voltage=info.voltage,
    )
