"""Tests for configuration loading and rendering."""

from __future__ import annotations

import pytest

from minerwatch.config import (
    CONFIG_ENV_VAR,
    DATABASE_FILENAME,
    DatabaseConfig,
    PollingConfig,
    ScanningConfig,
    Settings,
    database_path_from_settings,
    get_settings,
    load_settings,
    render_settings_toml,
    resolve_config_path,
    write_settings,
)


def test_config_roundtrip(tmp_path):
    path = tmp_path / "config.toml"
    settings = Settings(
        scanning=ScanningConfig(default_network="10.0.0.0/24"),
        polling=PollingConfig(interval=30.0),
    )
    write_settings(settings, path)

    loaded = load_settings(path)
    assert loaded == settings


def test_defaults():
    settings = Settings()

    assert settings.polling.interval == 10.0
    assert settings.polling.offline_threshold == 3
    assert settings.polling.offline_retry_interval == 180.0
    assert settings.retention.days == 30
    assert settings.retention.manual_cooldown == 60.0
    assert settings.watchdog.consecutive_anomalies == 3
    assert settings.scanning.legacy_port == 4028


def test_offline_threshold_is_fixed(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[polling]\noffline_threshold = 5\n")

    with pytest.raises(ValueError, match="Invalid config file"):
        load_settings(path)


def test_unknown_keys_are_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[watchdog]\nrestart_storms = true\n")

    with pytest.raises(ValueError):
        load_settings(path)


def test_invalid_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[polling\n")

    with pytest.raises(ValueError, match="Invalid TOML"):
        load_settings(path)


def test_env_var_points_to_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "nope.toml"))

    with pytest.raises(FileNotFoundError):
        get_settings()

    path, exists = resolve_config_path(allow_missing=True)
    assert path == tmp_path / "nope.toml"
    assert exists is False


def test_get_settings_reads_env_file(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    write_settings(Settings(database=DatabaseConfig(path=str(tmp_path / "data"))), path)
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

    settings = get_settings()

    assert database_path_from_settings(settings) == tmp_path / "data" / DATABASE_FILENAME


def test_render_has_commented_sections():
    text = render_settings_toml(Settings())

    for section in ("database", "polling", "watchdog", "retention", "scanning"):
        assert f"[{section}]" in text
    assert "restart_on_zero_hashrate = true" in text
    assert 'default_network = "192.168.1.0/24"' in text
