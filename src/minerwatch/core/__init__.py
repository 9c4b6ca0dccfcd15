"""Polling, supervision and retention."""

from minerwatch.core.adapter import (
    AvalonAdapter,
    AxeOSAdapter,
    DeviceAdapter,
    PollFailure,
    PollFailureKind,
    adapter_for,
)
from minerwatch.core.retention import RetentionResult, RetentionService
from minerwatch.core.supervisor import FleetSupervisor
from minerwatch.core.watchdog import Watchdog

__all__ = [
    "AvalonAdapter",
    "AxeOSAdapter",
    "DeviceAdapter",
    "FleetSupervisor",
    "PollFailure",
    "PollFailureKind",
    "RetentionResult",
    "RetentionService",
    "Watchdog",
    "adapter_for",
]
