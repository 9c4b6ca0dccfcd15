from __future__ import annotations

import os
from pathlib import Path

import platformdirs

APP_NAME = "minerwatch"
CONFIG_FILENAME = "config.toml"
DATABASE_FILENAME = "minerwatch.db"


def default_config_path() -> Path:
    """``config.toml`` in the per-user config directory of the platform."""
    return platformdirs.user_config_path(APP_NAME) / CONFIG_FILENAME


def default_data_dir() -> Path:
    """Where the snapshot database lives unless ``[database] path`` says otherwise."""
    return platformdirs.user_data_path(APP_NAME)


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and environment variables in a configured path."""
    return Path(os.path.expandvars(os.path.expanduser(str(value))))


def database_file(directory: str | Path) -> Path:
    return expand_path(directory) / DATABASE_FILENAME
