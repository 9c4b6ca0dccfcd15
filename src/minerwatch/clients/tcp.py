"""Client for cgminer-style miners (Avalon) on the plain-text API port.

Every command opens its own connection: the firmware does not handle more
than one request per socket reliably.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from minerwatch.errors import (
    ConfigurationError,
    DeviceConnectionError,
    DeviceTimeoutError,
    MalformedResponseError,
    MinerWatchError,
)
from minerwatch.models import AvalonDeviceInfo, DeviceSnapshot, PoolInfo
from minerwatch.protocol.wire import (
    extract_bracket_metrics,
    flatten_sections,
    last_number,
    parse_sections,
    to_float,
    to_int,
)
from minerwatch.utils.formatting import format_difficulty

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4028
DEFAULT_TIMEOUT = 10.0
DEFAULT_STRATUM_PORT = 3333
READ_CHUNK = 4096

REQUIRED_COMMANDS = ("summary", "pools", "estats")
OPTIONAL_COMMANDS = ("version",)


def legacy_device_id(address: str) -> str:
    return "avalon-" + address.replace(".", "-")


def legacy_hostname(address: str) -> str:
    return f"avalon-{address.rsplit('.', 1)[-1]}"


def _split_stratum_url(url: str) -> tuple[str, int]:
    cleaned = url.replace("stratum+tcp://", "").replace("stratum://", "")
    host, _, port = cleaned.partition(":")
    port_number = to_int(port.split("/", 1)[0]) if port else None
    return host, port_number or DEFAULT_STRATUM_PORT


def _first(values: dict[str, str], *keys: str) -> str | None:
    for key in keys:
        if key in values:
            return values[key]
    return None


def build_device_info(
    address: str,
    summary_raw: str,
    pools_raw: str,
    estats_raw: str,
    version_raw: str = "",
) -> AvalonDeviceInfo:
    """Merge the four command replies into one ``AvalonDeviceInfo``.

    Raises ``MalformedResponseError`` when neither the summary nor the
    estats reply carries anything usable.
    """
    summary = flatten_sections(parse_sections(summary_raw))
    pools = flatten_sections(parse_sections(pools_raw))
    version = flatten_sections(parse_sections(version_raw))
    estats = flatten_sections(parse_sections(estats_raw))
    estats.update(extract_bracket_metrics(estats_raw))

    if "Elapsed" not in summary and not any(
        key in estats for key in ("GHSspd", "GHSmm", "GHSavg", "PS")
    ):
        raise MalformedResponseError(f"No usable status in reply from {address}")

    hash_rate = to_float(_first(estats, "GHSspd", "GHSmm", "GHSavg")) or 0.0
    if hash_rate == 0:
        mhs = to_float(summary.get("MHS av"))
        if mhs is None:
            mhs = to_float(summary.get("MHS 5s"))
        if mhs is not None:
            hash_rate = mhs / 1000.0

    temps = [
        value
        for value in (to_float(estats.get(f"Temp{n}")) for n in (1, 2, 3))
        if value is not None
    ]
    intake = to_float(estats.get("ITemp")) or 0.0
    average = to_float(estats.get("TAvg")) or 0.0
    if average > 0:
        temperature = average
    elif temps:
        temperature = sum(temps) / len(temps)
    else:
        temperature = intake

    fans = [
        value
        for value in (to_int(estats.get(f"Fan{n}")) for n in (1, 2, 3))
        if value is not None
    ]

    stratum_host, stratum_port = "", DEFAULT_STRATUM_PORT
    if pools.get("URL"):
        stratum_host, stratum_port = _split_stratum_url(pools["URL"])

    best_share = to_int(summary.get("Best Share")) or 0
    uptime = to_int(summary.get("Elapsed"))
    if uptime is None:
        uptime = to_int(estats.get("Elapsed")) or 0
    mhs_5s = to_float(summary.get("MHS 5s"))
    mhs_1m = to_float(summary.get("MHS 1m"))

    return AvalonDeviceInfo(
        hostname=legacy_hostname(address),
        device_model=estats.get("Type") or version.get("Miner") or "Avalon",
        firmware_version=version.get("CGMiner") or estats.get("SWv1") or "Unknown",
        hash_rate=hash_rate,
        hash_rate_5s=mhs_5s / 1000.0 if mhs_5s is not None else hash_rate,
        hash_rate_1m=mhs_1m / 1000.0 if mhs_1m is not None else hash_rate,
        shares_accepted=to_int(summary.get("Accepted")) or 0,
        shares_rejected=to_int(summary.get("Rejected")) or 0,
        stale_shares=to_int(summary.get("Stale")) or 0,
        hardware_errors=to_int(summary.get("Hardware Errors")) or 0,
        stratum_url=stratum_host,
        stratum_port=stratum_port,
        stratum_user=pools.get("User", ""),
        pool_status=pools.get("Status", "Unknown"),
        temperature=temperature,
        temperatures=temps,
        intake_temp=intake,
        chip_temp_max=to_float(estats.get("TMax")) or 0.0,
        chip_temp_min=to_float(estats.get("TMin")) or 0.0,
        fan_speed=sum(fans) // len(fans) if fans else 0,
        fan_speed_percent=to_int(estats.get("FanR")) or 0,
        voltage=to_float(_first(estats, "Vol", "Voltage")) or 0.0,
        frequency=to_float(_first(estats, "Freq", "Frequency")) or 0.0,
        power=last_number(estats.get("PS")),
        uptime_seconds=uptime,
        asic_count=to_int(estats.get("ASIC")) or 0,
        chain_count=to_int(estats.get("MM Count")) or 1,
        best_diff=format_difficulty(best_share),
        best_share=best_share,
    )


def snapshot_from_avalon(
    device_id: str, info: AvalonDeviceInfo, timestamp_ms: int
) -> DeviceSnapshot:
    temperatures = {"asic": info.temperature}
    if info.chip_temp_max:
        temperatures["max"] = info.chip_temp_max
    if info.chip_temp_min:
        temperatures["min"] = info.chip_temp_min
    if info.intake_temp:
        temperatures["intake"] = info.intake_temp

    return DeviceSnapshot(
        device_id=device_id,
        timestamp_ms=timestamp_ms,
        hash_rate=info.hash_rate,
        power=info.power,
        temperatures=temperatures,
        fan_rpm=info.fan_speed,
        fan_percent=info.fan_speed_percent,
        pool=PoolInfo(
            url=info.stratum_url or None,
            port=info.stratum_port,
            user=info.stratum_user or None,
            status=info.pool_status,
        ),
        shares_accepted=info.shares_accepted,
        shares_rejected=info.shares_rejected,
        uptime_seconds=info.uptime_seconds,
        best_diff=info.best_diff,
        frequency=info.frequency,
        voltage=info.voltage,
    )


class AvalonClient:
    def __init__(
        self,
        address: str,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.address = address
        self.port = port
        self.timeout = timeout

    async def send(self, command: str, argument: str | None = None) -> str:
        """Send one command and return the reply text.

        Raises ``DeviceTimeoutError`` or ``DeviceConnectionError``, and
        ``ConfigurationError`` before connecting when the text is not ASCII.
        """
        payload = command if argument is None else f"{command}|{argument}"
        if not payload.isascii():
            raise ConfigurationError(f"Command for {self.address} must be ASCII: {payload!r}")
        logger.debug("Sending '%s' to %s:%d", payload, self.address, self.port)
        try:
            return await asyncio.wait_for(self._exchange(payload), timeout=self.timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise DeviceTimeoutError(
                f"No reply to '{command}' from {self.address} within {self.timeout:.1f}s",
                timeout=self.timeout,
            ) from exc
        except (ConnectionError, OSError) as exc:
            raise DeviceConnectionError(
                f"Cannot reach {self.address}:{self.port}: {exc}", address=self.address
            ) from exc

    async def _exchange(self, payload: str) -> str:
        reader, writer = await asyncio.open_connection(self.address, self.port)
        try:
            writer.write(payload.encode("ascii"))
            await writer.drain()

            chunks: list[bytes] = []
            while True:
                chunk = await reader.read(READ_CHUNK)
                if not chunk:
                    break
                chunks.append(chunk)
                if chunk.endswith(b"\x00"):
                    break
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()

        return b"".join(chunks).decode("utf-8", errors="replace").strip("\x00\r\n ")

    async def fetch_device_info(self) -> AvalonDeviceInfo:
        replies: dict[str, str] = {}
        for command in REQUIRED_COMMANDS:
            replies[command] = await self.send(command)
        for command in OPTIONAL_COMMANDS:
            try:
                replies[command] = await self.send(command)
            except MinerWatchError as exc:
                logger.debug("Optional '%s' failed on %s: %s", command, self.address, exc)
                replies[command] = ""

        return build_device_info(
            self.address,
            replies["summary"],
            replies["pools"],
            replies["estats"],
            replies["version"],
        )

    async def restart(self) -> None:
        await self.send("restart")

    async def set_fan_speed(self, percent: int) -> None:
        percent = max(0, min(100, percent))
        await self.send("ascset", f"0,fan,{percent}")

    async def set_performance_mode(self, mode: str) -> None:
        await self.send("ascset", f"0,freq,{mode}")

    async def set_frequency(self, mhz: int) -> None:
        await self.send("ascset", f"0,freq,{mhz}")

    async def add_pool(self, url: str, user: str, password: str = "x") -> None:
        await self.send("addpool", f"{url},{user},{password}")

    async def switch_pool(self, index: int) -> None:
        await self.send("switchpool", str(index))
