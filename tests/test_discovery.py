"""Tests for device identification and network scanning."""

from __future__ import annotations

import asyncio

import minerwatch.core.discovery as discovery
from minerwatch.config import ScanningConfig
from minerwatch.errors import DeviceConnectionError
from minerwatch.models import Device, ProtocolFamily


def test_probe_prefers_json_api_then_legacy(monkeypatch):
    tried: list[tuple[str, ProtocolFamily]] = []

    async def fake_identify(address, family, config, session=None):
        tried.append((address, family))
        if family is ProtocolFamily.HTTP_JSON:
            raise DeviceConnectionError("refused")
        return Device(
            device_id="avalon-10-0-0-5",
            name="avalon-5",
            address=address,
            protocol_family=family,
        )

    monkeypatch.setattr(discovery, "identify", fake_identify)

    device = asyncio.run(discovery.probe_device("10.0.0.5", ScanningConfig()))

    assert device is not None
    assert device.protocol_family is ProtocolFamily.LEGACY_TCP
    assert tried == [
        ("10.0.0.5", ProtocolFamily.HTTP_JSON),
        ("10.0.0.5", ProtocolFamily.LEGACY_TCP),
    ]


def test_scan_network_returns_found_devices_sorted(monkeypatch):
    answering = {"10.0.0.20", "10.0.0.3"}

    async def fake_probe(address, config, session=None):
        if address not in answering:
            return None
        return Device(
            device_id="axeos-" + address.replace(".", "-"),
            name=address,
            address=address,
            protocol_family=ProtocolFamily.HTTP_JSON,
        )

    monkeypatch.setattr(discovery, "probe_device", fake_probe)

    devices = asyncio.run(
        discovery.scan_network("10.0.0.0/27", ScanningConfig(parallel_scans=4))
    )

    assert [d.address for d in devices] == ["10.0.0.3", "10.0.0.20"]
