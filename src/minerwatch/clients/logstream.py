"""Live log stream from an AxeOS device over ``ws://<address>/api/ws``.

One background task owns the connection. It connects, pumps frames to the
subscribers, and on a drop either stops or reconnects with exponential
backoff, depending on the auto-reconnect setting.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

LOG_PATH = "/api/ws"
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BASE_DELAY = 5.0
DEFAULT_MAX_DELAY = 60.0
DEFAULT_PING_INTERVAL = 15.0
DEFAULT_CONNECT_TIMEOUT = 10.0
MAX_PING_FAILURES = 3

Subscriber = Callable[[str], None]
StateListener = Callable[["LogStreamState", int], None]
Connector = Callable[[str], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]

_CONNECT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, OSError)


class LogStreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    return min(base * 2 ** max(attempt - 1, 0), maximum)


class LogStreamClient:
    """Reconnecting subscriber to one device's log stream.

    ``connector`` and ``sleep`` exist so the connection and the backoff wait
    can be replaced; the default connector uses ``aiohttp``'s ``ws_connect``.
    """

    def __init__(
        self,
        address: str,
        *,
        session: aiohttp.ClientSession | None = None,
        connector: Connector | None = None,
        sleep: Sleeper = asyncio.sleep,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.address = address
        self.url = f"ws://{address}{LOG_PATH}"
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.ping_interval = ping_interval
        self.connect_timeout = connect_timeout

        self._session = session
        self._owns_session = session is None
        self._connector = connector or self._ws_connect
        self._sleep = sleep

        self._auto_reconnect = False
        self._max_attempts = DEFAULT_MAX_ATTEMPTS
        self._attempt = 0
        self._state = LogStreamState.DISCONNECTED
        self._task: asyncio.Task[None] | None = None
        self._subscribers: list[Subscriber] = []
        self._state_listeners: list[StateListener] = []
        self.last_error: BaseException | None = None

    @property
    def state(self) -> LogStreamState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_auto_reconnect(
        self, enabled: bool, max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> None:
        self._auto_reconnect = enabled
        self._max_attempts = max(1, max_attempts)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for frames arriving from now on.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def connect(self) -> None:
        """Start the connection task; a no-op while one is already running."""
        if self.is_running:
            logger.debug("Log stream for %s already %s", self.address, self._state.value)
            return
        self._attempt = 0
        self.last_error = None
        self._task = asyncio.create_task(
            self._run(), name=f"logstream-{self.address}"
        )

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._set_state(LogStreamState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait until the connection task gives up or is closed."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def _set_state(self, state: LogStreamState) -> None:
        if state is self._state:
            return
        logger.debug("Log stream %s: %s -> %s", self.address, self._state.value, state.value)
        self._state = state
        for listener in list(self._state_listeners):
            listener(state, self._attempt)

    def _publish(self, text: str) -> None:
        for callback in list(self._subscribers):
            try:
                callback(text)
            except Exception:
                logger.exception("Log subscriber failed for %s", self.address)

    async def _ws_connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return await asyncio.wait_for(
            self._session.ws_connect(url), timeout=self.connect_timeout
        )

    async def _run(self) -> None:
        # _attempt counts consecutive failed connects; a session that came up
        # and later dropped leaves it at zero.
        reconnecting = False
        while True:
            self._set_state(
                LogStreamState.RECONNECTING if reconnecting else LogStreamState.CONNECTING
            )
            try:
                ws = await self._connector(self.url)
            except _CONNECT_ERRORS as exc:
                self.last_error = exc
                self._attempt += 1
                logger.debug(
                    "Log stream connect to %s failed (attempt %d): %s",
                    self.url,
                    self._attempt,
                    exc,
                )
                connected = False
            else:
                connected = True
                self._attempt = 0
                self._set_state(LogStreamState.CONNECTED)
                logger.info("Log stream connected to %s", self.url)
                try:
                    await self._pump(ws)
                finally:
                    await ws.close()
                logger.info("Log stream to %s dropped", self.url)

            if not self._auto_reconnect:
                self._set_state(
                    LogStreamState.DISCONNECTED if connected else LogStreamState.FAILED
                )
                return

            if self._attempt >= self._max_attempts:
                logger.warning(
                    "Giving up on log stream %s after %d failed attempts",
                    self.url,
                    self._attempt,
                )
                self._set_state(LogStreamState.DISCONNECTED)
                return

            reconnecting = True
            delay = backoff_delay(self._attempt, self.base_delay, self.max_delay)
            self._set_state(LogStreamState.RECONNECTING)
            logger.debug(
                "Reconnecting to %s in %.1fs (%d failed)", self.url, delay, self._attempt
            )
            await self._sleep(delay)

    async def _pump(self, ws: Any) -> None:
        pinger = asyncio.create_task(self._ping_loop(ws))
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._publish(message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    self._publish(message.data.decode("utf-8", errors="replace"))
                elif message.type == aiohttp.WSMsgType.ERROR:
                    self.last_error = ws.exception()
                    break
        finally:
            pinger.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pinger

    async def _ping_loop(self, ws: Any) -> None:
        failures = 0
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await ws.ping()
            except (ConnectionError, RuntimeError, aiohttp.ClientError) as exc:
                failures += 1
                logger.debug("Ping %d to %s failed: %s", failures, self.url, exc)
                if failures >= MAX_PING_FAILURES:
                    logger.warning("Log stream %s stopped answering pings", self.url)
                    await ws.close()
                    return
            else:
                failures = 0
