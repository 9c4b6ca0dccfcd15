from __future__ import annotations

from .paths import (
    APP_NAME,
    CONFIG_FILENAME,
    DATABASE_FILENAME,
    database_file,
    default_config_path,
    default_data_dir,
    expand_path,
)
from .settings import (
    CONFIG_ENV_VAR,
    DatabaseConfig,
    PollingConfig,
    RetentionConfig,
    ScanningConfig,
    Settings,
    WatchdogConfig,
    data_dir_from_settings,
    database_path_from_settings,
    get_settings,
    load_settings,
    render_settings_toml,
    resolve_config_path,
    write_settings,
)

__all__ = [
    "APP_NAME",
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    "DATABASE_FILENAME",
    "database_file",
    "DatabaseConfig",
    "PollingConfig",
    "RetentionConfig",
    "ScanningConfig",
    "Settings",
    "WatchdogConfig",
    "data_dir_from_settings",
    "database_path_from_settings",
    "default_config_path",
    "default_data_dir",
    "expand_path",
    "get_settings",
    "load_settings",
    "render_settings_toml",
    "resolve_config_path",
    "write_settings",
]
