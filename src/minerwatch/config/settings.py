from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from minerwatch.models import OFFLINE_THRESHOLD

from .paths import database_file, default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "MINERWATCH_CONFIG"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class PollingConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    interval: float = Field(default=10.0, gt=0)
    timeout: float = Field(default=10.0, gt=0)
    # Fixed: a device is offline after three consecutive failed polls.
    offline_threshold: Literal[3] = OFFLINE_THRESHOLD
    offline_retry_interval: float = Field(default=180.0, gt=0)


class WatchdogConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = True
    consecutive_anomalies: int = Field(default=3, ge=1)
    cooldown: float = Field(default=180.0, ge=0)
    history_window: int = Field(default=8, ge=1)
    low_power_threshold: float = Field(default=0.1, ge=0)
    power_deviation_ratio: float = Field(default=0.5, gt=0)
    baseline_samples: int = Field(default=5, ge=1)
    restart_on_zero_hashrate: bool = True


class RetentionConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    days: int = Field(default=30, ge=1)
    interval: float = Field(default=3600.0, gt=0)
    batch_size: int = Field(default=1000, ge=1)
    manual_cooldown: float = Field(default=60.0, ge=0)


class ScanningConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    default_network: str = "192.168.1.0/24"
    timeout: float = Field(default=3.0, gt=0)
    parallel_scans: int = Field(default=50, ge=1, le=255)
    legacy_port: int = Field(default=4028, ge=1, le=65535)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def database_path_from_settings(settings: Settings) -> Path:
    return database_file(settings.database.path)


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)


_SECTION_COMMENTS = {
    "database": "Directory holding minerwatch.db",
    "polling": "Per-device poll schedule; offline_threshold is fixed at 3",
    "watchdog": "Automatic restarts for stalled or misbehaving miners",
    "retention": "Snapshot history pruning",
    "scanning": "Network discovery",
}


def render_settings_toml(settings: Settings) -> str:
    lines = ["# minerwatch configuration", ""]
    for section, values in settings.model_dump().items():
        lines.append(f"# {_SECTION_COMMENTS[section]}")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
