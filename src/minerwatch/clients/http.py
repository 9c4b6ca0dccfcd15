"""HTTP client for the AxeOS JSON API (Bitaxe, NerdQAxe)."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from minerwatch.errors import (
    DeviceConnectionError,
    DeviceRequestError,
    DeviceTimeoutError,
    MalformedResponseError,
)
from minerwatch.models import AxeOSDeviceInfo, AxeOSSettings
from minerwatch.protocol.axeos import decode_device_info, encode_settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

INFO_PATH = "/api/system/info"
SETTINGS_PATH = "/api/system"
RESTART_PATH = "/api/system/restart"


class AxeOSClient:
    """One device's JSON API.

    Pass ``session`` to share an ``aiohttp.ClientSession`` across devices;
    otherwise the client opens its own on first use and ``close`` releases it.
    """

    def __init__(
        self,
        address: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.address = address
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return f"http://{self.address}"

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            logger.debug("Closing HTTP session for %s", self.address)
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _check_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        body: Mapping[str, Any] | None = None,
        expect_json: bool = True,
    ) -> Any:
        session = self._check_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(
                method,
                url,
                json=body,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                text = await response.text()
                if response.status >= 400:
                    raise DeviceRequestError(
                        f"Device {self.address} rejected {method} {path} "
                        f"(HTTP {response.status}): {text.strip() or response.reason}",
                        status=response.status,
                    )
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise DeviceTimeoutError(
                f"No reply from {self.address} within {self.timeout:.1f}s",
                timeout=self.timeout,
            ) from exc
        except (aiohttp.ClientConnectionError, OSError) as exc:
            raise DeviceConnectionError(
                f"Cannot reach {self.address}: {exc}", address=self.address
            ) from exc
        except aiohttp.ClientError as exc:
            raise DeviceConnectionError(
                f"HTTP error talking to {self.address}: {exc}", address=self.address
            ) from exc

        if not expect_json or not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(
                f"Invalid JSON from {self.address}{path}: {exc}"
            ) from exc

    async def fetch_device_info(self) -> AxeOSDeviceInfo:
        payload = await self._request("GET", INFO_PATH)
        return decode_device_info(payload)

    async def update_settings(self, settings: AxeOSSettings | Mapping[str, Any]) -> None:
        """PATCH only the supplied fields.

        Raises ``ConfigurationError`` before any I/O if the payload is invalid.
        """
        body = encode_settings(settings)
        logger.debug("Updating %s settings: %s", self.address, sorted(body))
        await self._request("PATCH", SETTINGS_PATH, body, expect_json=False)

    async def restart(self) -> None:
        await self._request("POST", RESTART_PATH, expect_json=False)

    async def set_fan_speed(self, percent: int) -> None:
        await self.update_settings(
            AxeOSSettings(autofanspeed=0, fanspeed=max(0, min(100, percent)))
        )
