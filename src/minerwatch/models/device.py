"""Device models."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

OFFLINE_THRESHOLD = 3


class ProtocolFamily(str, Enum):
    HTTP_JSON = "http_json"
    LEGACY_TCP = "legacy_tcp"


class MinerType(str, Enum):
    BITAXE_ULTRA = "Bitaxe Ultra"
    BITAXE_SUPRA = "Bitaxe Supra"
    BITAXE_GAMMA = "Bitaxe Gamma"
    BITAXE_GAMMA_TURBO = "Bitaxe Gamma Turbo"
    NERDQAXE_PLUS = "NerdQAxe+"
    NERDQAXE_PLUS_PLUS = "NerdQAxe++"
    NERD_OCTAXE = "NerdOCTAXE-γ"
    NERD_QX = "NerdQX"
    AVALON_10 = "Avalon 10xx"
    AVALON_11 = "Avalon 11xx"
    AVALON_12 = "Avalon 12xx"
    AVALON_13 = "Avalon 13xx"
    AVALON_14 = "Avalon 14xx"
    AVALON_15 = "Avalon 15xx"
    AVALON_16 = "Avalon A16"
    AVALON_NANO = "Avalon Nano"
    AVALON_GENERIC = "Avalon Miner"
    UNKNOWN = "Unknown"


_AVALON_SERIES = {
    "10": MinerType.AVALON_10,
    "11": MinerType.AVALON_11,
    "12": MinerType.AVALON_12,
    "13": MinerType.AVALON_13,
    "14": MinerType.AVALON_14,
    "15": MinerType.AVALON_15,
    "16": MinerType.AVALON_16,
}


def avalon_miner_type(model: str | None) -> MinerType:
    """Classify an Avalon model string such as ``Avalon1066`` or ``A1246``."""
    if not model:
        return MinerType.AVALON_GENERIC
    lowered = model.lower()
    if "nano" in lowered:
        return MinerType.AVALON_NANO
    match = re.search(r"(\d{2})\d{2}", lowered) or re.search(r"a(\d{2})\b", lowered)
    if match and match.group(1) in _AVALON_SERIES:
        return _AVALON_SERIES[match.group(1)]
    return MinerType.AVALON_GENERIC


_NERD_MODELS = {
    MinerType.NERDQAXE_PLUS.value: MinerType.NERDQAXE_PLUS,
    MinerType.NERDQAXE_PLUS_PLUS.value: MinerType.NERDQAXE_PLUS_PLUS,
    MinerType.NERD_OCTAXE.value: MinerType.NERD_OCTAXE,
    MinerType.NERD_QX.value: MinerType.NERD_QX,
}


def axeos_miner_type(board_version: str | None, device_model: str | None) -> MinerType:
    """Classify an AxeOS device by board version range or reported model."""
    if board_version:
        try:
            board = int(board_version)
        except ValueError:
            return MinerType.UNKNOWN
        if 200 <= board < 300:
            return MinerType.BITAXE_ULTRA
        if 400 <= board < 500:
            return MinerType.BITAXE_SUPRA
        if 600 <= board < 700:
            return MinerType.BITAXE_GAMMA
        if 800 <= board < 900:
            return MinerType.BITAXE_GAMMA_TURBO
        return MinerType.UNKNOWN
    if device_model:
        return _NERD_MODELS.get(device_model, MinerType.UNKNOWN)
    return MinerType.UNKNOWN


class Device(BaseModel):
    """A monitored miner.

    ``device_id`` is the MAC address when the device reports one, otherwise an
    identifier synthesized from its network address. Neither it nor
    ``protocol_family`` changes after creation; use ``model_copy`` to derive
    an updated record.
    """

    model_config = {"frozen": True}

    device_id: str
    name: str
    address: str
    protocol_family: ProtocolFamily
    board_version: str | None = None
    model: str | None = None
    consecutive_failures: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_offline(self) -> bool:
        return self.consecutive_failures >= OFFLINE_THRESHOLD

    @property
    def miner_type(self) -> MinerType:
        if self.protocol_family is ProtocolFamily.LEGACY_TCP:
            return avalon_miner_type(self.model)
        return axeos_miner_type(self.board_version, self.model)
