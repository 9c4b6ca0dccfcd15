"""SQLite storage for devices, snapshots and watchdog actions.

Snapshot metrics are stored as a JSON payload next to the indexed columns
(device, timestamp, failed) that queries and retention filter on.
"""

from __future__ import annotations

import asyncio
import json
import logging
import string
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from minerwatch.errors import StorageError
from minerwatch.models import Device, DeviceSnapshot, ProtocolFamily, WatchdogActionLogEntry

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    device_id            TEXT PRIMARY KEY,
    name                 TEXT NOT NULL,
    address              TEXT NOT NULL,
    protocol_family      TEXT NOT NULL CHECK (protocol_family IN ('http_json', 'legacy_tcp')),
    board_version        TEXT,
    model                TEXT,
    consecutive_failures INTEGER NOT NULL DEFAULT 0,
    created_at           TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS snapshots (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id    TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    failed       INTEGER NOT NULL DEFAULT 0,
    payload      TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS action_log (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id    TEXT NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    action       TEXT NOT NULL,
    reason       TEXT NOT NULL,
    is_read      INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_snapshots_device_time ON snapshots(device_id, timestamp_ms);
CREATE INDEX IF NOT EXISTS idx_snapshots_time ON snapshots(timestamp_ms);
CREATE INDEX IF NOT EXISTS idx_action_log_device ON action_log(device_id, timestamp_ms);
"""

_SNAPSHOT_COLUMNS = {"id", "device_id", "timestamp_ms", "failed"}


def normalize_mac(value: str) -> str:
    cleaned = value.replace(":", "").replace("-", "").replace(".", "")
    if len(cleaned) == 12 and all(ch in string.hexdigits for ch in cleaned):
        return ":".join(cleaned[i : i + 2].upper() for i in range(0, 12, 2))
    return value


def _address_key(address: str) -> tuple[int, ...] | tuple[str]:
    parts = address.split(":", 1)[0].split(".")
    if len(parts) == 4 and all(part.isdigit() for part in parts):
        return tuple(int(part) for part in parts)
    return (address,)


def _row_to_device(row: aiosqlite.Row) -> Device:
    return Device(
        device_id=row["device_id"],
        name=row["name"],
        address=row["address"],
        protocol_family=ProtocolFamily(row["protocol_family"]),
        board_version=row["board_version"],
        model=row["model"],
        consecutive_failures=row["consecutive_failures"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_snapshot(row: aiosqlite.Row) -> DeviceSnapshot:
    data: dict[str, Any] = json.loads(row["payload"] or "{}")
    data.update(
        id=row["id"],
        device_id=row["device_id"],
        timestamp_ms=row["timestamp_ms"],
        failed=bool(row["failed"]),
    )
    return DeviceSnapshot.model_validate(data)


def _row_to_action(row: aiosqlite.Row) -> WatchdogActionLogEntry:
    return WatchdogActionLogEntry(
        id=row["id"],
        device_id=row["device_id"],
        timestamp_ms=row["timestamp_ms"],
        action=row["action"],
        reason=row["reason"],
        is_read=bool(row["is_read"]),
    )


class Database:
    """Async storage boundary over one SQLite file.

    Usage::

        async with Database(path) as db:
            await db.upsert_device(device)
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._db: aiosqlite.Connection | None = None
        # Multi-statement transactions share one connection with concurrent
        # single-statement writers.
        self._tx_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(f"Database {self._path} is not open")
        return self._db

    async def open(self) -> Database:
        if self._db is not None:
            return self
        if str(self._path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()
        logger.debug("Opened database %s", self._path)
        return self

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> Database:
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _write(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Cursor:
        try:
            async with self._tx_lock:
                cursor = await self.conn.execute(sql, tuple(params))
                await self.conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Database write failed: {exc}") from exc
        return cursor

    async def _read(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        try:
            async with self.conn.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(f"Database read failed: {exc}") from exc

    # Devices

    async def upsert_device(self, device: Device) -> Device:
        existing = await self.get_device(device.device_id)
        if existing and existing.protocol_family is not device.protocol_family:
            raise StorageError(
                f"Device {device.device_id} is registered as "
                f"{existing.protocol_family.value}, not {device.protocol_family.value}"
            )
        await self._write(
            """
            INSERT INTO devices (device_id, name, address, protocol_family,
                                 board_version, model, consecutive_failures, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(device_id) DO UPDATE SET
                name = excluded.name,
                address = excluded.address,
                board_version = excluded.board_version,
                model = excluded.model
            """,
            (
                device.device_id,
                device.name,
                device.address,
                device.protocol_family.value,
                device.board_version,
                device.model,
                device.consecutive_failures,
                device.created_at.isoformat(),
            ),
        )
        stored = await self.get_device(device.device_id)
        if stored is None:
            raise StorageError(f"Device {device.device_id} vanished while being saved")
        return stored

    async def get_device(self, device_id: str) -> Device | None:
        rows = await self._read("SELECT * FROM devices WHERE device_id = ?", (device_id,))
        return _row_to_device(rows[0]) if rows else None

    async def list_devices(self) -> list[Device]:
        rows = await self._read("SELECT * FROM devices ORDER BY name, device_id")
        return [_row_to_device(row) for row in rows]

    async def device_ids(self) -> set[str]:
        rows = await self._read("SELECT device_id FROM devices")
        return {row["device_id"] for row in rows}

    async def update_failure_count(self, device_id: str, count: int) -> None:
        await self._write(
            "UPDATE devices SET consecutive_failures = ? WHERE device_id = ?",
            (count, device_id),
        )

    async def delete_device(self, device_id: str) -> bool:
        """Delete a device with all of its snapshots and action log entries."""
        try:
            async with self._tx_lock:
                await self.conn.execute(
                    "DELETE FROM snapshots WHERE device_id = ?", (device_id,)
                )
                await self.conn.execute(
                    "DELETE FROM action_log WHERE device_id = ?", (device_id,)
                )
                cursor = await self.conn.execute(
                    "DELETE FROM devices WHERE device_id = ?", (device_id,)
                )
                await self.conn.commit()
        except aiosqlite.Error as exc:
            await self.conn.rollback()
            raise StorageError(f"Could not delete device {device_id}: {exc}") from exc
        return cursor.rowcount > 0

    async def merge_duplicate_devices(self) -> int:
        """Collapse devices whose identifiers are the same MAC in different spellings.

        The device with the highest address is kept and inherits the others'
        history. Returns the number of devices removed.
        """
        groups: dict[str, list[Device]] = {}
        for device in await self.list_devices():
            if device.protocol_family is ProtocolFamily.HTTP_JSON:
                groups.setdefault(normalize_mac(device.device_id), []).append(device)

        removed = 0
        for mac, devices in groups.items():
            if len(devices) < 2:
                continue
            devices.sort(key=lambda item: _address_key(item.address), reverse=True)
            keep, duplicates = devices[0], devices[1:]
            logger.info(
                "Merging %d duplicate(s) of %s into %s",
                len(duplicates),
                mac,
                keep.device_id,
            )
            async with self._tx_lock:
                try:
                    for duplicate in duplicates:
                        await self.conn.execute(
                            "UPDATE snapshots SET device_id = ? WHERE device_id = ?",
                            (keep.device_id, duplicate.device_id),
                        )
                        await self.conn.execute(
                            "UPDATE action_log SET device_id = ? WHERE device_id = ?",
                            (keep.device_id, duplicate.device_id),
                        )
                        await self.conn.execute(
                            "DELETE FROM devices WHERE device_id = ?", (duplicate.device_id,)
                        )
                    await self.conn.commit()
                except aiosqlite.Error as exc:
                    await self.conn.rollback()
                    raise StorageError(f"Could not merge duplicates of {mac}: {exc}") from exc
            removed += len(duplicates)
        return removed

    # Snapshots

    async def append_snapshot(self, snapshot: DeviceSnapshot) -> DeviceSnapshot:
        """Store a snapshot; rejected when its device is not registered."""
        payload = snapshot.model_dump(mode="json", exclude=_SNAPSHOT_COLUMNS)
        cursor = await self._write(
            """
            INSERT INTO snapshots (device_id, timestamp_ms, failed, payload)
            SELECT ?, ?, ?, ?
            WHERE EXISTS (SELECT 1 FROM devices WHERE device_id = ?)
            """,
            (
                snapshot.device_id,
                snapshot.timestamp_ms,
                int(snapshot.failed),
                json.dumps(payload),
                snapshot.device_id,
            ),
        )
        if cursor.rowcount == 0:
            raise StorageError(
                f"Snapshot rejected: device {snapshot.device_id} is not registered"
            )
        return snapshot.model_copy(update={"id": cursor.lastrowid})

    async def query_snapshots(
        self,
        device_id: str,
        since_ms: int | None = None,
        until_ms: int | None = None,
        limit: int | None = None,
    ) -> list[DeviceSnapshot]:
        sql = "SELECT * FROM snapshots WHERE device_id = ?"
        params: list[Any] = [device_id]
        if since_ms is not None:
            sql += " AND timestamp_ms >= ?"
            params.append(since_ms)
        if until_ms is not None:
            sql += " AND timestamp_ms <= ?"
            params.append(until_ms)
        sql += " ORDER BY timestamp_ms, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = await self._read(sql, params)
        return [_row_to_snapshot(row) for row in rows]

    async def latest_snapshots(self, device_id: str, limit: int) -> list[DeviceSnapshot]:
        """Most recent ``limit`` snapshots, oldest first."""
        rows = await self._read(
            """
            SELECT * FROM snapshots WHERE device_id = ?
            ORDER BY timestamp_ms DESC, id DESC LIMIT ?
            """,
            (device_id, limit),
        )
        return [_row_to_snapshot(row) for row in reversed(rows)]

    async def delete_snapshot(self, snapshot_id: int) -> bool:
        cursor = await self._write("DELETE FROM snapshots WHERE id = ?", (snapshot_id,))
        return cursor.rowcount > 0

    async def count_snapshots(self, device_id: str | None = None) -> int:
        if device_id is None:
            sql, params = "SELECT COUNT(*) FROM snapshots", ()
        else:
            sql, params = "SELECT COUNT(*) FROM snapshots WHERE device_id = ?", (device_id,)
        rows = await self._read(sql, params)
        return rows[0][0] if rows else 0

    async def delete_snapshots_older_than(self, cutoff_ms: int, batch_size: int) -> int:
        """Delete in batches of ``batch_size``, committing after each one."""
        total = 0
        while True:
            cursor = await self._write(
                """
                DELETE FROM snapshots WHERE id IN (
                    SELECT id FROM snapshots WHERE timestamp_ms < ? LIMIT ?
                )
                """,
                (cutoff_ms, batch_size),
            )
            deleted = cursor.rowcount
            total += deleted
            if deleted < batch_size:
                return total
            await asyncio.sleep(0)

    async def delete_orphan_snapshots(self, known_ids: set[str], batch_size: int) -> int:
        """Delete snapshots whose device id is not in ``known_ids``."""
        rows = await self._read("SELECT DISTINCT device_id FROM snapshots")
        orphans = [row["device_id"] for row in rows if row["device_id"] not in known_ids]

        total = 0
        for device_id in orphans:
            while True:
                cursor = await self._write(
                    """
                    DELETE FROM snapshots WHERE id IN (
                        SELECT id FROM snapshots WHERE device_id = ? LIMIT ?
                    )
                    """,
                    (device_id, batch_size),
                )
                total += cursor.rowcount
                if cursor.rowcount < batch_size:
                    break
                await asyncio.sleep(0)
        return total

    # Watchdog actions

    async def append_action(self, entry: WatchdogActionLogEntry) -> WatchdogActionLogEntry:
        cursor = await self._write(
            """
            INSERT INTO action_log (device_id, timestamp_ms, action, reason, is_read)
            SELECT ?, ?, ?, ?, ?
            WHERE EXISTS (SELECT 1 FROM devices WHERE device_id = ?)
            """,
            (
                entry.device_id,
                entry.timestamp_ms,
                entry.action.value,
                entry.reason,
                int(entry.is_read),
                entry.device_id,
            ),
        )
        if cursor.rowcount == 0:
            raise StorageError(
                f"Action rejected: device {entry.device_id} is not registered"
            )
        return entry.model_copy(update={"id": cursor.lastrowid})

    async def list_actions(
        self, device_id: str | None = None, unread_only: bool = False
    ) -> list[WatchdogActionLogEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        if device_id is not None:
            clauses.append("device_id = ?")
            params.append(device_id)
        if unread_only:
            clauses.append("is_read = 0")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._read(
            f"SELECT * FROM action_log{where} ORDER BY timestamp_ms DESC, id DESC", params
        )
        return [_row_to_action(row) for row in rows]

    async def mark_action_read(self, action_id: int, is_read: bool = True) -> bool:
        cursor = await self._write(
            "UPDATE action_log SET is_read = ? WHERE id = ?", (int(is_read), action_id)
        )
        return cursor.rowcount > 0

    async def mark_all_actions_read(self) -> int:
        cursor = await self._write("UPDATE action_log SET is_read = 1 WHERE is_read = 0")
        return cursor.rowcount
