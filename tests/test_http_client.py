"""Tests for the AxeOS HTTP client against an in-process aiohttp server."""

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from minerwatch.clients.http import AxeOSClient
from minerwatch.errors import (
    ConfigurationError,
    DeviceConnectionError,
    DeviceRequestError,
    DeviceTimeoutError,
    MalformedResponseError,
)
from minerwatch.models import AxeOSSettings


def _app(calls: list[tuple[str, str, object]], info: object = None, **overrides) -> web.Application:
    async def system_info(request: web.Request) -> web.Response:
        calls.append((request.method, request.path, None))
        if "info_delay" in overrides:
            await asyncio.sleep(overrides["info_delay"])
        if "info_text" in overrides:
            return web.Response(text=overrides["info_text"])
        return web.json_response(info if info is not None else {"hostname": "bitaxe"})

    async def patch_system(request: web.Request) -> web.Response:
        body = await request.json()
        calls.append((request.method, request.path, body))
        if body.get("hostname") == "reject-me":
            return web.Response(status=400, text="Invalid hostname")
        return web.Response(text="")

    async def restart(request: web.Request) -> web.Response:
        calls.append((request.method, request.path, None))
        return web.Response(text="System will restart shortly.")

    app = web.Application()
    app.router.add_get("/api/system/info", system_info)
    app.router.add_patch("/api/system", patch_system)
    app.router.add_post("/api/system/restart", restart)
    return app


def _run(app: web.Application, action, timeout: float = 2.0):
    async def run():
        async with TestServer(app) as server:
            client = AxeOSClient(f"{server.host}:{server.port}", timeout=timeout)
            try:
                return await action(client)
            finally:
                await client.close()

    return asyncio.run(run())


def test_fetch_device_info():
    calls: list = []
    app = _app(calls, info={"hostname": "bitaxe-1", "hashRate": 980.5, "boardVersion": 204})

    info = _run(app, lambda client: client.fetch_device_info())

    assert calls == [("GET", "/api/system/info", None)]
    assert info.hostname == "bitaxe-1"
    assert info.hash_rate == 980.5
    assert info.board_version == "204"


def test_update_settings_patches_only_supplied_fields():
    calls: list = []

    _run(
        _app(calls),
        lambda client: client.update_settings(AxeOSSettings(stratum_url="pool", stratum_port=4444)),
    )

    assert calls == [("PATCH", "/api/system", {"stratumURL": "pool", "stratumPort": 4444})]


def test_set_fan_speed_disables_auto_fan():
    calls: list = []

    _run(_app(calls), lambda client: client.set_fan_speed(60))

    assert calls == [("PATCH", "/api/system", {"autofanspeed": 0, "fanspeed": 60})]


def test_restart_posts():
    calls: list = []

    _run(_app(calls), lambda client: client.restart())

    assert calls == [("POST", "/api/system/restart", None)]


def test_rejected_update_carries_readable_reason():
    with pytest.raises(DeviceRequestError) as excinfo:
        _run(_app([]), lambda client: client.update_settings({"hostname": "reject-me"}))

    assert excinfo.value.status == 400
    assert "HTTP 400" in excinfo.value.reason
    assert "Invalid hostname" in excinfo.value.reason


def test_invalid_settings_fail_before_any_request():
    calls: list = []

    with pytest.raises(ConfigurationError):
        _run(_app(calls), lambda client: client.update_settings({"fanspeed": 250}))

    assert calls == []


def test_invalid_json_is_malformed():
    with pytest.raises(MalformedResponseError):
        _run(_app([], info_text="<html>not json</html>"), lambda client: client.fetch_device_info())


def test_non_object_json_is_malformed():
    with pytest.raises(MalformedResponseError):
        _run(_app([], info_text=json.dumps([1, 2])), lambda client: client.fetch_device_info())


def test_slow_device_times_out():
    with pytest.raises(DeviceTimeoutError):
        _run(_app([], info_delay=1.0), lambda client: client.fetch_device_info(), timeout=0.1)


def test_unreachable_device():
    async def run():
        server = TestServer(web.Application())
        await server.start_server()
        address = f"{server.host}:{server.port}"
        await server.close()
        client = AxeOSClient(address, timeout=1.0)
        try:
            await client.fetch_device_info()
        finally:
            await client.close()

    with pytest.raises(DeviceConnectionError):
        asyncio.run(run())
