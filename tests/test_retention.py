"""Tests for snapshot retention and the manual trigger."""

import asyncio

import aiosqlite

from minerwatch.config import RetentionConfig
from minerwatch.core.retention import DAY_MS, RetentionService
from minerwatch.models import Device, DeviceSnapshot, ProtocolFamily
from minerwatch.storage import Database

NOW = 1_700_000_000_000


class Clock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


async def _seed(db: Database, device_id: str = "avalon-10-0-0-5") -> None:
    await db.upsert_device(
        Device(
            device_id=device_id,
            name="avalon-5",
            address="10.0.0.5",
            protocol_family=ProtocolFamily.LEGACY_TCP,
        )
    )


def test_sweep_keeps_snapshots_inside_window(tmp_path):
    async def run():
        async with Database(tmp_path / "minerwatch.db") as db:
            await _seed(db)
            for age_days in (40, 10):
                await db.append_snapshot(
                    DeviceSnapshot(
                        device_id="avalon-10-0-0-5",
                        timestamp_ms=NOW - age_days * DAY_MS,
                    )
                )
            service = RetentionService(db, RetentionConfig(days=30, batch_size=1))
            result = await service.run_once(now=NOW)
            return result, await db.query_snapshots("avalon-10-0-0-5")

    result, remaining = asyncio.run(run())

    assert result.expired == 1
    assert result.orphans == 0
    assert [s.timestamp_ms for s in remaining] == [NOW - 10 * DAY_MS]


def test_orphan_sweep_only_removes_unknown_devices(tmp_path):
    async def run():
        async with Database(tmp_path / "minerwatch.db") as db:
            await _seed(db)
            await db.append_snapshot(DeviceSnapshot(device_id="avalon-10-0-0-5", timestamp_ms=NOW))
            # Simulate a removed device whose history survived.
            await db.conn.execute(
                "INSERT INTO snapshots (device_id, timestamp_ms, failed, payload) "
                "VALUES ('gone', ?, 0, '{}')",
                (NOW,),
            )
            await db.conn.commit()

            service = RetentionService(db, RetentionConfig())
            removed = await service.sweep_orphans()
            return removed, await db.count_snapshots(), await db.count_snapshots("gone")

    removed, total, gone = asyncio.run(run())

    assert removed == 1
    assert total == 1
    assert gone == 0


def test_manual_trigger_is_rate_limited(tmp_path):
    clock = Clock()

    async def run():
        async with Database(tmp_path / "minerwatch.db") as db:
            service = RetentionService(
                db, RetentionConfig(interval=3600, manual_cooldown=60), clock=clock
            )
            first = service.trigger()
            queued_twice = service.trigger()
            service.start()
            for _ in range(200):
                if service.last_result is not None:
                    break
                await asyncio.sleep(0.01)
            too_soon = service.trigger()
            clock.now += 61
            later = service.trigger()
            await service.stop()
            return first, queued_twice, service.last_result, too_soon, later

    first, queued_twice, result, too_soon, later = asyncio.run(run())

    assert first is True
    assert queued_twice is False
    assert result is not None
    assert result.total == 0
    assert too_soon is False
    assert later is True


def test_failing_sweep_is_retried_on_next_interval(tmp_path):
    calls = 0

    async def run():
        async with Database(tmp_path / "minerwatch.db") as db:

            async def locked() -> set[str]:
                nonlocal calls
                calls += 1
                raise aiosqlite.OperationalError("database is locked")

            db.device_ids = locked
            service = RetentionService(db, RetentionConfig(interval=0.01))
            service.start()
            await asyncio.sleep(0.2)
            running = service.running
            await service.stop()
            return running

    running = asyncio.run(run())

    assert running is True
    assert calls >= 2
