"""One polling and control interface over both device families.

``adapter_for`` picks the implementation once, from the device's stored
protocol family. Callers never branch on the family themselves.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

import aiohttp

from minerwatch.clients.http import AxeOSClient
from minerwatch.clients.tcp import DEFAULT_PORT, AvalonClient, snapshot_from_avalon
from minerwatch.errors import (
    DeviceConnectionError,
    DeviceRequestError,
    DeviceTimeoutError,
    MalformedResponseError,
    MinerWatchError,
    UnsupportedOperationError,
)
from minerwatch.models import AxeOSSettings, Device, DeviceSnapshot, ProtocolFamily, now_ms
from minerwatch.protocol.axeos import snapshot_from_info

logger = logging.getLogger(__name__)


class PollFailureKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed-response"


class PollFailure(MinerWatchError):
    """A poll that produced no reading.

    Attributes:
        kind: Uniform failure category
        device_id: Device that was polled

    """

    def __init__(self, kind: PollFailureKind, reason: str, device_id: str = "") -> None:
        self.kind: PollFailureKind = kind
        self.device_id: str = device_id
        super().__init__(reason)


def classify_failure(exc: MinerWatchError) -> PollFailureKind:
    if isinstance(exc, DeviceTimeoutError):
        return PollFailureKind.TIMEOUT
    if isinstance(exc, DeviceConnectionError):
        return PollFailureKind.UNREACHABLE
    if isinstance(exc, (MalformedResponseError, DeviceRequestError)):
        return PollFailureKind.MALFORMED_RESPONSE
    return PollFailureKind.UNREACHABLE


class DeviceAdapter(ABC):
    def __init__(self, device: Device) -> None:
        self.device = device

    async def poll(self, timeout: float | None = None) -> DeviceSnapshot:
        """Read the device once. Raises ``PollFailure`` on any failure."""
        if timeout is not None:
            self._set_timeout(timeout)
        try:
            return await self._poll()
        except PollFailure:
            raise
        except MinerWatchError as exc:
            kind = classify_failure(exc)
            raise PollFailure(kind, exc.reason, self.device.device_id) from exc

    @abstractmethod
    def _set_timeout(self, timeout: float) -> None: ...

    @abstractmethod
    async def _poll(self) -> DeviceSnapshot: ...

    @abstractmethod
    async def restart(self) -> None: ...

    @abstractmethod
    async def set_fan_speed(self, percent: int) -> None: ...

    @abstractmethod
    async def set_performance_mode(self, mode: str) -> None: ...

    @abstractmethod
    async def update_pool(
        self,
        url: str,
        port: int,
        user: str,
        password: str = "x",
    ) -> None: ...

    async def close(self) -> None:
        return None


class AxeOSAdapter(DeviceAdapter):
    def __init__(self, device: Device, client: AxeOSClient) -> None:
        super().__init__(device)
        self.client = client

    def _set_timeout(self, timeout: float) -> None:
        self.client.timeout = timeout

    async def _poll(self) -> DeviceSnapshot:
        info = await self.client.fetch_device_info()
        return snapshot_from_info(self.device.device_id, info, now_ms())

    async def restart(self) -> None:
        await self.client.restart()

    async def set_fan_speed(self, percent: int) -> None:
        await self.client.set_fan_speed(percent)

    async def set_performance_mode(self, mode: str) -> None:
        raise UnsupportedOperationError(
            f"{self.device.name} runs AxeOS, which has no performance modes; "
            "set frequency and core voltage instead"
        )

    async def update_settings(self, settings: AxeOSSettings) -> None:
        await self.client.update_settings(settings)

    async def update_pool(
        self,
        url: str,
        port: int,
        user: str,
        password: str = "x",
    ) -> None:
        await self.client.update_settings(
            AxeOSSettings(
                stratum_url=url,
                stratum_port=port,
                stratum_user=user,
                stratum_password=password,
            )
        )

    async def close(self) -> None:
        await self.client.close()


class AvalonAdapter(DeviceAdapter):
    def __init__(self, device: Device, client: AvalonClient) -> None:
        super().__init__(device)
        self.client = client

    def _set_timeout(self, timeout: float) -> None:
        self.client.timeout = timeout

    async def _poll(self) -> DeviceSnapshot:
        info = await self.client.fetch_device_info()
        return snapshot_from_avalon(self.device.device_id, info, now_ms())

    async def restart(self) -> None:
        await self.client.restart()

    async def set_fan_speed(self, percent: int) -> None:
        await self.client.set_fan_speed(percent)

    async def set_performance_mode(self, mode: str) -> None:
        await self.client.set_performance_mode(mode)

    async def update_pool(
        self,
        url: str,
        port: int,
        user: str,
        password: str = "x",
    ) -> None:
        await self.client.add_pool(f"stratum+tcp://{url}:{port}", user, password)


def adapter_for(
    device: Device,
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float = 10.0,
    legacy_port: int = DEFAULT_PORT,
) -> DeviceAdapter:
    if device.protocol_family is ProtocolFamily.LEGACY_TCP:
        return AvalonAdapter(
            device, AvalonClient(device.address, port=legacy_port, timeout=timeout)
        )
    return AxeOSAdapter(
        device, AxeOSClient(device.address, session=session, timeout=timeout)
    )
