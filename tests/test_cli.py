"""End-to-end tests for the minerwatch CLI with the network faked out."""

from __future__ import annotations

import asyncio

import pytest
from typer.testing import CliRunner

import minerwatch.cli.devices as devices_cmd
import minerwatch.cli.scan as scan_cmd
import minerwatch.core.supervisor as supervisor_module
from minerwatch.cli.app import app
from minerwatch.config import (
    CONFIG_ENV_VAR,
    DATABASE_FILENAME,
    DatabaseConfig,
    ScanningConfig,
    Settings,
    get_settings,
    write_settings,
)
from minerwatch.core.adapter import DeviceAdapter
from minerwatch.core.retention import DAY_MS
from minerwatch.models import (
    Device,
    DeviceSnapshot,
    ProtocolFamily,
    WatchdogActionLogEntry,
    now_ms,
)
from minerwatch.storage import Database

runner = CliRunner()

BITAXE = Device(
    device_id="AA:BB:CC:DD:EE:01",
    name="bitaxe-kitchen",
    address="192.168.1.10",
    protocol_family=ProtocolFamily.HTTP_JSON,
    board_version="601",
)


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    data_dir = tmp_path / "data"
    config_path = tmp_path / "config.toml"
    write_settings(
        Settings(
            database=DatabaseConfig(path=str(data_dir)),
            scanning=ScanningConfig(default_network="192.168.1.0/24"),
        ),
        config_path,
    )
    monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))
    monkeypatch.setenv("COLUMNS", "200")
    get_settings.cache_clear()
    return data_dir


def _seed(data_dir, action):
    async def run():
        async with Database(data_dir / DATABASE_FILENAME) as db:
            await db.upsert_device(BITAXE)
            if action is not None:
                await action(db)

    asyncio.run(run())


def test_init_creates_database(data_dir):
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert (data_dir / DATABASE_FILENAME).exists()


def test_config_show(data_dir):
    result = runner.invoke(app, ["config", "show"])

    assert result.exit_code == 0
    assert "[watchdog]" in result.stdout


def test_config_init_does_not_overwrite(data_dir, tmp_path):
    result = runner.invoke(app, ["config", "init"])

    assert result.exit_code == 0
    assert "already exists" in result.stdout


def test_devices_add_list_remove(data_dir, monkeypatch):
    async def fake_identify(address, family, config, session=None):
        assert family is ProtocolFamily.HTTP_JSON
        return BITAXE.model_copy(update={"address": address})

    monkeypatch.setattr(devices_cmd, "identify", fake_identify)

    added = runner.invoke(
        app, ["devices", "add", "192.168.1.10", "--family", "http_json", "--name", "Kitchen"]
    )
    listed = runner.invoke(app, ["devices", "list"])
    removed = runner.invoke(app, ["devices", "remove", BITAXE.device_id])
    removed_again = runner.invoke(app, ["devices", "remove", BITAXE.device_id])

    assert added.exit_code == 0
    assert "Bitaxe Gamma" in added.stdout
    assert listed.exit_code == 0
    assert "Kitchen" in listed.stdout
    assert "online" in listed.stdout
    assert removed.exit_code == 0
    assert removed_again.exit_code == 1


def test_devices_add_without_answer_fails(data_dir, monkeypatch):
    async def fake_probe(address, config, session=None):
        return None

    monkeypatch.setattr(devices_cmd, "probe_device", fake_probe)

    result = runner.invoke(app, ["devices", "add", "192.168.1.77"])

    assert result.exit_code == 1
    assert "no miner answered" in result.stdout


def test_devices_list_redacts(data_dir):
    _seed(data_dir, None)

    result = runner.invoke(app, ["devices", "list", "--redact"])

    assert result.exit_code == 0
    assert "x.x.x.10" in result.stdout
    assert "192.168.1.10" not in result.stdout


def test_scan_marks_registered_devices(data_dir, monkeypatch):
    _seed(data_dir, None)
    stranger = Device(
        device_id="avalon-192-168-1-50",
        name="avalon-50",
        address="192.168.1.50",
        protocol_family=ProtocolFamily.LEGACY_TCP,
        model="Avalon1246",
    )

    async def fake_scan(network, config):
        assert network == "192.168.1.0/24"
        return [BITAXE, stranger]

    monkeypatch.setattr(scan_cmd, "scan_network", fake_scan)

    result = runner.invoke(app, ["scan"])

    assert result.exit_code == 0
    assert "Found 2 miner(s)" in result.stdout
    assert "Avalon 12xx" in result.stdout
    assert "yes" in result.stdout


class ScriptedAdapter(DeviceAdapter):
    def _set_timeout(self, timeout: float) -> None:
        return None

    async def _poll(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=self.device.device_id,
            hash_rate=1105.3,
            power=14.2,
            temperatures={"asic": 58.5},
        )

    async def restart(self) -> None:
        return None

    async def set_fan_speed(self, percent: int) -> None:
        return None

    async def set_performance_mode(self, mode: str) -> None:
        return None

    async def update_pool(self, url, port, user, password="x") -> None:
        return None


def test_poll_records_and_prints(data_dir, monkeypatch):
    _seed(data_dir, None)
    monkeypatch.setattr(
        supervisor_module, "adapter_for", lambda device, **kwargs: ScriptedAdapter(device)
    )

    result = runner.invoke(app, ["poll"])
    history = runner.invoke(app, ["history", BITAXE.device_id, "--since-hours", "1"])

    assert result.exit_code == 0
    assert "1.11 TH/s" in result.stdout
    assert history.exit_code == 0
    assert "14.2 W" in history.stdout


def test_poll_unknown_device(data_dir):
    _seed(data_dir, None)

    result = runner.invoke(app, ["poll", "nope"])

    assert result.exit_code == 1


def test_actions_list_and_ack(data_dir):
    async def add_action(db: Database):
        await db.append_action(
            WatchdogActionLogEntry(device_id=BITAXE.device_id, reason="zero hashrate")
        )

    _seed(data_dir, add_action)

    listed = runner.invoke(app, ["actions", "list", "--unread"])
    acked = runner.invoke(app, ["actions", "ack", "--all"])
    after = runner.invoke(app, ["actions", "list", "--unread"])

    assert "zero hashrate" in listed.stdout
    assert "Acknowledged 1 action(s)" in acked.stdout
    assert "No watchdog actions recorded." in after.stdout


def test_actions_ack_requires_target(data_dir):
    result = runner.invoke(app, ["actions", "ack"])

    assert result.exit_code == 1


def test_actions_ack_single_and_unknown(data_dir):
    async def add_action(db: Database):
        await db.append_action(
            WatchdogActionLogEntry(device_id=BITAXE.device_id, reason="zero hashrate")
        )

    _seed(data_dir, add_action)

    acked = runner.invoke(app, ["actions", "ack", "1"])
    missing = runner.invoke(app, ["actions", "ack", "99"])

    assert acked.exit_code == 0
    assert "Acknowledged 1 action(s)" in acked.stdout
    assert missing.exit_code == 1
    assert "Action 99 not found" in missing.stdout


def test_cleanup_removes_expired(data_dir):
    async def add_snapshots(db: Database):
        now = now_ms()
        for age_days in (40, 10):
            await db.append_snapshot(
                DeviceSnapshot(device_id=BITAXE.device_id, timestamp_ms=now - age_days * DAY_MS)
            )

    _seed(data_dir, add_snapshots)

    result = runner.invoke(app, ["cleanup"])

    assert result.exit_code == 0
    assert "Removed 1 snapshot(s) older than 30 days" in result.stdout


def test_restart_unknown_device_reports_error(data_dir):
    _seed(data_dir, None)

    result = runner.invoke(app, ["restart", "nope"])

    assert result.exit_code == 1


def test_config_show_single_section(data_dir):
    result = runner.invoke(app, ["config", "show", "--section", "retention"])

    assert result.exit_code == 0
    assert "[retention]" in result.stdout
    assert "[watchdog]" not in result.stdout
    assert str(data_dir / DATABASE_FILENAME) in result.stdout


def test_config_show_unknown_section(data_dir):
    result = runner.invoke(app, ["config", "show", "--section", "nope"])

    assert result.exit_code == 1


def test_config_path(data_dir, tmp_path):
    result = runner.invoke(app, ["config", "path"])

    assert result.exit_code == 0
    assert "missing" not in result.stdout


def test_init_reports_existing_miners(data_dir):
    _seed(data_dir, None)

    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert "1 miner(s), 0 snapshot(s)" in result.stdout
