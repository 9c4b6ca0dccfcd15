"""Background pruning of snapshot history."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from minerwatch.config import RetentionConfig
from minerwatch.errors import StorageError
from minerwatch.models import now_ms
from minerwatch.storage.database import Database

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class RetentionResult:
    expired: int = 0
    orphans: int = 0

    @property
    def total(self) -> int:
        return self.expired + self.orphans


class RetentionService:
    """Deletes expired and orphaned snapshots on a fixed interval.

    The service task is the only place sweeps run. ``trigger`` asks it for an
    extra sweep through a queue and is rate limited by ``manual_cooldown``.
    """

    def __init__(
        self,
        db: Database,
        config: RetentionConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db = db
        self.config = config
        self._clock = clock
        self._queue: asyncio.Queue[None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._last_run: float | None = None
        self.last_result: RetentionResult | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="retention")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def trigger(self) -> bool:
        """Request an immediate sweep; False when rate limited or already queued."""
        if not self._queue.empty():
            return False
        if (
            self._last_run is not None
            and self._clock() - self._last_run < self.config.manual_cooldown
        ):
            logger.debug("Manual cleanup skipped: last sweep was too recent")
            return False
        self._queue.put_nowait(None)
        return True

    async def _run(self) -> None:
        while True:
            with contextlib.suppress(asyncio.TimeoutError, TimeoutError):
                await asyncio.wait_for(self._queue.get(), timeout=self.config.interval)
            try:
                await self.run_once()
            except StorageError as exc:
                logger.error("Snapshot cleanup failed, retrying next interval: %s", exc.reason)
            except Exception:
                logger.exception("Unexpected error during snapshot cleanup, retrying next interval")
            finally:
                while not self._queue.empty():
                    self._queue.get_nowait()

    async def run_once(self, now: int | None = None) -> RetentionResult:
        self._last_run = self._clock()
        result = RetentionResult(
            expired=await self.sweep_expired(now),
            orphans=await self.sweep_orphans(),
        )
        self.last_result = result
        if result.total:
            logger.info(
                "Cleanup removed %d snapshot(s) older than %d days and %d orphan(s)",
                result.expired,
                self.config.days,
                result.orphans,
            )
        else:
            logger.debug("Cleanup found nothing to delete")
        return result

    async def sweep_expired(self, now: int | None = None) -> int:
        cutoff = (now if now is not None else now_ms()) - self.config.days * DAY_MS
        return await self.db.delete_snapshots_older_than(cutoff, self.config.batch_size)

    async def sweep_orphans(self) -> int:
        known = await self.db.device_ids()
        return await self.db.delete_orphan_snapshots(known, self.config.batch_size)
