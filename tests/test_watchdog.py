"""Tests for the watchdog anomaly rules."""

from minerwatch.config import WatchdogConfig
from minerwatch.core.watchdog import AnomalyKind, Watchdog
from minerwatch.models import DeviceSnapshot


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _reading(hash_rate=500.0, power=15.0, device_id="dev"):
    return DeviceSnapshot(device_id=device_id, timestamp_ms=1, hash_rate=hash_rate, power=power)


def test_zero_hashrate_needs_consecutive_readings():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=3), clock=Clock())

    results = [watchdog.evaluate(_reading(hash_rate=0.0)) for _ in range(3)]

    assert results[:2] == [None, None]
    assert results[2] is not None
    assert "3 consecutive zero hashrate readings detected" in results[2]
    assert watchdog.streak("dev") == 0


def test_normal_reading_resets_streak():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=3), clock=Clock())

    watchdog.evaluate(_reading(hash_rate=0.0))
    watchdog.evaluate(_reading(hash_rate=0.0))
    watchdog.evaluate(_reading())
    watchdog.evaluate(_reading(hash_rate=0.0))

    assert watchdog.streak("dev") == 1


def test_failed_readings_are_ignored():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=2), clock=Clock())

    watchdog.evaluate(_reading(hash_rate=0.0))
    assert watchdog.evaluate(DeviceSnapshot.failure("dev")) is None
    assert watchdog.streak("dev") == 1


def test_cooldown_suppresses_second_restart():
    clock = Clock()
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=1, cooldown=180), clock=clock)

    assert watchdog.evaluate(_reading(hash_rate=0.0)) is not None
    assert watchdog.in_cooldown("dev")
    assert watchdog.evaluate(_reading(hash_rate=0.0)) is None

    clock.now += 181
    assert watchdog.evaluate(_reading(hash_rate=0.0)) is not None


def test_recovery_clears_cooldown():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=1), clock=Clock())

    watchdog.evaluate(_reading(hash_rate=0.0))
    watchdog.evaluate(_reading())

    assert not watchdog.in_cooldown("dev")
    assert watchdog.evaluate(_reading(hash_rate=0.0)) is not None


def test_restart_failed_allows_retry():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=1), clock=Clock())

    watchdog.evaluate(_reading(hash_rate=0.0))
    watchdog.restart_failed("dev")

    assert watchdog.evaluate(_reading(hash_rate=0.0)) is not None


def test_stalled_low_power_with_unchanged_hashrate():
    config = WatchdogConfig(
        consecutive_anomalies=2, history_window=2, restart_on_zero_hashrate=False
    )
    watchdog = Watchdog(config, clock=Clock())

    first = watchdog.evaluate(_reading(hash_rate=10.0, power=0.05))
    assert watchdog.detect(_reading(hash_rate=10.0, power=0.05)).kind is AnomalyKind.STALLED
    second = watchdog.evaluate(_reading(hash_rate=10.0, power=0.05))
    third = watchdog.evaluate(_reading(hash_rate=10.0, power=0.05))

    assert first is None
    assert second is None
    assert third is not None
    assert "Power: 0.05 W (threshold: <= 0.10 W)" in third


def test_power_deviation_from_baseline():
    config = WatchdogConfig(consecutive_anomalies=1, baseline_samples=3)
    watchdog = Watchdog(config, clock=Clock())

    for _ in range(3):
        assert watchdog.evaluate(_reading(power=15.0)) is None
    anomaly = watchdog.detect(_reading(power=40.0))
    reason = watchdog.evaluate(_reading(power=40.0))

    assert anomaly is not None
    assert anomaly.kind is AnomalyKind.POWER_DEVIATION
    assert reason is not None
    assert "baseline 15.00 W" in reason


def test_disabled_watchdog_never_acts():
    watchdog = Watchdog(WatchdogConfig(enabled=False, consecutive_anomalies=1), clock=Clock())
    assert watchdog.evaluate(_reading(hash_rate=0.0)) is None


def test_devices_are_tracked_independently():
    watchdog = Watchdog(WatchdogConfig(consecutive_anomalies=2), clock=Clock())

    watchdog.evaluate(_reading(hash_rate=0.0, device_id="a"))
    watchdog.evaluate(_reading(hash_rate=0.0, device_id="b"))
    watchdog.forget("b")

    assert watchdog.streak("a") == 1
    assert watchdog.streak("b") == 0
