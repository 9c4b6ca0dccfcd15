"""Per-device polling loops, liveness tracking and watchdog actions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

import aiohttp

from minerwatch.config import Settings
from minerwatch.core.adapter import DeviceAdapter, PollFailure, adapter_for
from minerwatch.core.watchdog import Watchdog
from minerwatch.errors import MinerWatchError, StorageError
from minerwatch.models import (
    OFFLINE_THRESHOLD,
    Device,
    DeviceSnapshot,
    WatchdogActionLogEntry,
    now_ms,
)
from minerwatch.storage.database import Database

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[Device], DeviceAdapter]
SnapshotListener = Callable[[Device, DeviceSnapshot], None]
Sleeper = Callable[[float], Awaitable[None]]


class FleetSupervisor:
    """Polls every known device on its own schedule.

    Each device gets one task that polls, records, sleeps and repeats, so a
    device's snapshots are written in poll order and a slow device never
    holds up another. The device set is only changed through ``add_device``
    and ``remove_device``.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        *,
        adapter_factory: AdapterFactory | None = None,
        watchdog: Watchdog | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.db = db
        self.settings = settings
        self.watchdog = watchdog or Watchdog(settings.watchdog)
        self._adapter_factory = adapter_factory or self._default_adapter
        self._sleep = sleep

        self._devices: dict[str, Device] = {}
        self._adapters: dict[str, DeviceAdapter] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._last_timestamp: dict[str, int] = {}
        self._listeners: list[SnapshotListener] = []
        self._session: aiohttp.ClientSession | None = None
        self._running = False

    @property
    def devices(self) -> list[Device]:
        return list(self._devices.values())

    @property
    def running(self) -> bool:
        return self._running

    def get_device(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    def failures(self, device_id: str) -> int:
        device = self._devices.get(device_id)
        return device.consecutive_failures if device else 0

    def is_offline(self, device_id: str) -> bool:
        return self.failures(device_id) >= OFFLINE_THRESHOLD

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def _default_adapter(self, device: Device) -> DeviceAdapter:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return adapter_for(
            device,
            session=self._session,
            timeout=self.settings.polling.timeout,
            legacy_port=self.settings.scanning.legacy_port,
        )

    def _adapter(self, device: Device) -> DeviceAdapter:
        adapter = self._adapters.get(device.device_id)
        if adapter is None:
            adapter = self._adapter_factory(device)
            self._adapters[device.device_id] = adapter
        return adapter

    async def load(self) -> None:
        """Rebuild the in-memory device set from storage."""
        for device in await self.db.list_devices():
            self._devices[device.device_id] = device

    async def start(self) -> None:
        if self._running:
            return
        await self.load()
        self._running = True
        for device_id in self._devices:
            self._start_task(device_id)
        logger.info("Supervising %d device(s)", len(self._devices))

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.debug("Supervisor stopped")

    async def add_device(self, device: Device) -> Device:
        stored = await self.db.upsert_device(device)
        self._devices[stored.device_id] = stored
        self._adapters.pop(stored.device_id, None)
        if self._running and stored.device_id not in self._tasks:
            self._start_task(stored.device_id)
        return stored

    async def remove_device(self, device_id: str) -> bool:
        task = self._tasks.pop(device_id, None)
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._devices.pop(device_id, None)
        self._last_timestamp.pop(device_id, None)
        self.watchdog.forget(device_id)
        adapter = self._adapters.pop(device_id, None)
        if adapter is not None:
            await adapter.close()
        return await self.db.delete_device(device_id)

    def _start_task(self, device_id: str) -> None:
        self._tasks[device_id] = asyncio.create_task(
            self._run_device(device_id), name=f"poll-{device_id}"
        )

    def _interval(self, device_id: str) -> float:
        polling = self.settings.polling
        if self.is_offline(device_id):
            return polling.offline_retry_interval
        return polling.interval

    async def _run_device(self, device_id: str) -> None:
        while device_id in self._devices:
            try:
                await self.poll_once(device_id)
            except Exception:
                logger.exception("Unexpected error polling %s", device_id)
            await self._sleep(self._interval(device_id))

    async def poll_once(self, device_id: str) -> DeviceSnapshot:
        """Run one poll cycle: poll, update liveness, persist, run the watchdog.

        Never raises for device or storage errors; the outcome is always
        visible in the returned snapshot.
        """
        device = self._devices[device_id]
        adapter = self._adapter(device)
        previous_failures = device.consecutive_failures

        try:
            snapshot = await adapter.poll(self.settings.polling.timeout)
            failures = 0
        except PollFailure as exc:
            failures = previous_failures + 1
            snapshot = DeviceSnapshot.failure(device_id)
            if failures == OFFLINE_THRESHOLD:
                logger.warning(
                    "%s (%s) is offline after %d failed polls: %s",
                    device.name,
                    device.address,
                    failures,
                    exc.reason,
                )
            else:
                logger.debug("Poll of %s failed (%s): %s", device.name, exc.kind.value, exc.reason)

        if failures == 0 and previous_failures >= OFFLINE_THRESHOLD:
            logger.info("%s (%s) is back online", device.name, device.address)

        snapshot = self._clamp_timestamp(snapshot)
        if device_id in self._devices:
            device = device.model_copy(update={"consecutive_failures": failures})
            self._devices[device_id] = device

        await self._record(device, snapshot)
        if not snapshot.failed:
            await self._run_watchdog(device, adapter, snapshot)

        for listener in list(self._listeners):
            listener(device, snapshot)
        return snapshot

    def _clamp_timestamp(self, snapshot: DeviceSnapshot) -> DeviceSnapshot:
        last = self._last_timestamp.get(snapshot.device_id)
        if last is not None and snapshot.timestamp_ms < last:
            logger.debug(
                "Clock moved back for %s; clamping %d to %d",
                snapshot.device_id,
                snapshot.timestamp_ms,
                last,
            )
            snapshot = snapshot.model_copy(update={"timestamp_ms": last})
        self._last_timestamp[snapshot.device_id] = snapshot.timestamp_ms
        return snapshot

    async def _record(self, device: Device, snapshot: DeviceSnapshot) -> None:
        try:
            await self.db.update_failure_count(device.device_id, device.consecutive_failures)
            await self.db.append_snapshot(snapshot)
        except StorageError as exc:
            logger.error("Could not record poll of %s: %s", device.device_id, exc.reason)

    async def _run_watchdog(
        self, device: Device, adapter: DeviceAdapter, snapshot: DeviceSnapshot
    ) -> None:
        reason = self.watchdog.evaluate(snapshot)
        if reason is None:
            return

        logger.info("Watchdog restarting %s (%s): %s", device.name, device.address, reason)
        try:
            await adapter.restart()
        except MinerWatchError as exc:
            logger.warning("Watchdog restart of %s failed: %s", device.name, exc.reason)
            self.watchdog.restart_failed(device.device_id)
            return

        entry = WatchdogActionLogEntry(
            device_id=device.device_id, timestamp_ms=now_ms(), reason=reason
        )
        try:
            await self.db.append_action(entry)
        except StorageError as exc:
            logger.error("Could not log watchdog action for %s: %s", device.device_id, exc.reason)
