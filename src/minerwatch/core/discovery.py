from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket

import aiohttp

from minerwatch.clients.http import AxeOSClient
from minerwatch.clients.tcp import AvalonClient, legacy_device_id
from minerwatch.config import ScanningConfig
from minerwatch.errors import MinerWatchError
from minerwatch.models import Device, ProtocolFamily
from minerwatch.storage.database import normalize_mac

logger = logging.getLogger(__name__)


async def identify(
    address: str,
    family: ProtocolFamily,
    config: ScanningConfig,
    session: aiohttp.ClientSession | None = None,
) -> Device:
    """Ask the device at ``address`` who it is. Raises ``MinerWatchError``."""
    if family is ProtocolFamily.LEGACY_TCP:
        avalon = AvalonClient(address, port=config.legacy_port, timeout=config.timeout)
        info = await avalon.fetch_device_info()
        return Device(
            device_id=legacy_device_id(address),
            name=info.hostname,
            address=address,
            protocol_family=family,
            model=info.device_model,
        )

    client = AxeOSClient(address, session=session, timeout=config.timeout)
    try:
        axeos = await client.fetch_device_info()
    finally:
        await client.close()

    mac = normalize_mac(axeos.mac_addr or "")
    return Device(
        device_id=mac or "axeos-" + address.replace(".", "-"),
        name=axeos.hostname or address,
        address=address,
        protocol_family=family,
        board_version=axeos.board_version,
        model=axeos.device_model or axeos.asic_model,
    )


async def probe_device(
    address: str,
    config: ScanningConfig,
    session: aiohttp.ClientSession | None = None,
) -> Device | None:
    """Try the JSON API first, then the legacy port; None if neither answers."""
    for family in (ProtocolFamily.HTTP_JSON, ProtocolFamily.LEGACY_TCP):
        try:
            device = await identify(address, family, config, session=session)
        except MinerWatchError as exc:
            logger.debug("No %s miner at %s: %s", family.value, address, exc.reason)
            continue
        logger.debug("Found %s miner '%s' at %s", family.value, device.name, address)
        return device
    return None


async def scan_network(network: str, config: ScanningConfig) -> list[Device]:
    hosts = [str(host) for host in ipaddress.ip_network(network, strict=False).hosts()]
    logger.debug(
        "Probing %d hosts in %s (parallel=%d, timeout=%.2fs)",
        len(hosts),
        network,
        config.parallel_scans,
        config.timeout,
    )
    semaphore = asyncio.Semaphore(config.parallel_scans)

    async with aiohttp.ClientSession() as session:

        async def _probe(address: str) -> Device | None:
            async with semaphore:
                return await probe_device(address, config, session=session)

        results = await asyncio.gather(*(_probe(host) for host in hosts))

    devices = [device for device in results if device is not None]
    devices.sort(key=lambda device: ipaddress.ip_address(device.address))
    logger.debug("Scan complete: found %d miners", len(devices))
    return devices


def detect_local_network() -> str:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            local_ip = sock.getsockname()[0]
        network = ipaddress.ip_network(f"{local_ip}/24", strict=False)
        logger.debug("Detected local network: %s", network)
        return str(network)
    except OSError as exc:
        raise RuntimeError("Could not detect local network") from exc
