"""Anomaly rules that decide when a miner should be restarted.

A restart needs ``consecutive_anomalies`` qualifying readings in a row and
is never repeated for the same device inside ``cooldown`` seconds.
"""

from __future__ import annotations

import logging
import statistics
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from minerwatch.config import WatchdogConfig
from minerwatch.models import DeviceSnapshot

logger = logging.getLogger(__name__)

HASHRATE_EPSILON = 0.001


class AnomalyKind(str, Enum):
    STALLED = "stalled"
    ZERO_HASHRATE = "zero_hashrate"
    POWER_DEVIATION = "power_deviation"


@dataclass
class Anomaly:
    kind: AnomalyKind
    detail: str


@dataclass
class _DeviceWatch:
    baseline: deque[float]
    recent: deque[DeviceSnapshot]
    streak: int = 0
    last_action_at: float | None = None


class Watchdog:
    def __init__(
        self, config: WatchdogConfig, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.config = config
        self._clock = clock
        self._devices: dict[str, _DeviceWatch] = {}

    def _watch(self, device_id: str) -> _DeviceWatch:
        watch = self._devices.get(device_id)
        if watch is None:
            watch = _DeviceWatch(
                baseline=deque(maxlen=self.config.baseline_samples),
                recent=deque(maxlen=self.config.history_window),
            )
            self._devices[device_id] = watch
        return watch

    def forget(self, device_id: str) -> None:
        self._devices.pop(device_id, None)

    def streak(self, device_id: str) -> int:
        watch = self._devices.get(device_id)
        return watch.streak if watch else 0

    def in_cooldown(self, device_id: str) -> bool:
        watch = self._devices.get(device_id)
        if watch is None or watch.last_action_at is None:
            return False
        return self._clock() - watch.last_action_at < self.config.cooldown

    def detect(self, snapshot: DeviceSnapshot) -> Anomaly | None:
        """Check one successful reading against this device's recent history."""
        watch = self._watch(snapshot.device_id)
        cfg = self.config
        hash_rate = snapshot.hash_rate
        power = snapshot.power

        if power is not None and power <= cfg.low_power_threshold and watch.recent:
            # Every reading still in the window must be low power too.
            window_low = all(
                reading.power is not None and reading.power <= cfg.low_power_threshold
                for reading in watch.recent
            )
            previous = watch.recent[-1]
            unchanged = (
                previous.hash_rate is not None
                and hash_rate is not None
                and abs(previous.hash_rate - hash_rate) < HASHRATE_EPSILON
            )
            if window_low and unchanged:
                return Anomaly(
                    AnomalyKind.STALLED,
                    f"Power: {power:.2f} W (threshold: <= {cfg.low_power_threshold:.2f} W)"
                    f" • Hash rate: {hash_rate:.2f} GH/s",
                )

        if cfg.restart_on_zero_hashrate and hash_rate is not None and hash_rate <= 0:
            return Anomaly(AnomalyKind.ZERO_HASHRATE, "Hash rate: 0.00 GH/s while online")

        if power is not None and len(watch.baseline) >= cfg.baseline_samples:
            baseline = statistics.fmean(watch.baseline)
            if baseline > cfg.low_power_threshold:
                deviation = abs(power - baseline) / baseline
                if deviation > cfg.power_deviation_ratio:
                    return Anomaly(
                        AnomalyKind.POWER_DEVIATION,
                        f"Power: {power:.2f} W vs baseline {baseline:.2f} W"
                        f" ({deviation:.0%} deviation)",
                    )
        return None

    def evaluate(self, snapshot: DeviceSnapshot) -> str | None:
        """Feed one reading; returns a restart reason when the watchdog should act.

        Failed readings leave the streak untouched.
        """
        if not self.config.enabled or snapshot.failed:
            return None

        watch = self._watch(snapshot.device_id)
        anomaly = self.detect(snapshot)
        watch.recent.append(snapshot)

        if anomaly is None:
            if watch.streak:
                logger.debug("%s recovered after %d anomalies", snapshot.device_id, watch.streak)
            watch.streak = 0
            if snapshot.power is not None:
                watch.baseline.append(snapshot.power)
            if snapshot.hash_rate and snapshot.hash_rate > 0:
                self.record_recovery(snapshot.device_id)
            return None

        watch.streak += 1
        logger.debug(
            "%s anomaly %d/%d: %s",
            snapshot.device_id,
            watch.streak,
            self.config.consecutive_anomalies,
            anomaly.detail,
        )

        if watch.streak < self.config.consecutive_anomalies:
            return None
        if self.in_cooldown(snapshot.device_id):
            logger.debug("%s restart suppressed by cooldown", snapshot.device_id)
            return None

        reason = (
            f"{anomaly.detail} • {watch.streak} consecutive "
            f"{anomaly.kind.value.replace('_', ' ')} readings detected"
        )
        watch.streak = 0
        watch.last_action_at = self._clock()
        return reason

    def record_recovery(self, device_id: str) -> None:
        watch = self._devices.get(device_id)
        if watch is not None and watch.last_action_at is not None:
            logger.debug("%s is hashing again; clearing restart cooldown", device_id)
            watch.last_action_at = None

    def restart_failed(self, device_id: str) -> None:
        """Drop the cooldown so a restart that never reached the device can be retried."""
        watch = self._devices.get(device_id)
        if watch is not None:
            watch.last_action_at = None
