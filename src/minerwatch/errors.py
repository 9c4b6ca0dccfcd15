"""Exception hierarchy shared by the clients, supervisor and CLI.

Every error carries a human-readable ``reason`` that the CLI prints as-is.
Network errors also subclass the matching builtin so callers can catch
``TimeoutError`` / ``ConnectionError`` without importing this module.
"""

from __future__ import annotations


class MinerWatchError(Exception):
    def __init__(self, reason: str) -> None:
        self.reason: str = reason
        super().__init__(reason)


class DeviceConnectionError(MinerWatchError, ConnectionError):
    """Socket or HTTP connection could not be opened, or was reset.

    Attributes:
        address: Device address the connection targeted

    """

    def __init__(self, reason: str, address: str = "") -> None:
        self.address: str = address
        super().__init__(reason)


class DeviceTimeoutError(MinerWatchError, TimeoutError):
    """No complete response arrived within the configured bound."""

    def __init__(self, reason: str, timeout: float = 0.0) -> None:
        self.timeout: float = timeout
        super().__init__(reason)


class MalformedResponseError(MinerWatchError):
    """A codec could not locate the fields it requires."""


class ConfigurationError(MinerWatchError, ValueError):
    """Caller supplied an invalid settings payload."""


class StorageError(MinerWatchError):
    """A read or write through the storage boundary was rejected or failed."""


class LogStreamError(MinerWatchError):
    """Log stream failure.

    Attributes:
        state: Stream state name when the error occurred

    """

    def __init__(self, reason: str, state: str = "unknown") -> None:
        self.state: str = state
        super().__init__(f"{reason} (state: {state})")
        self.reason = reason


class DeviceRequestError(MinerWatchError):
    """The device answered, but rejected the request.

    Attributes:
        status: HTTP status code returned by the device

    """

    def __init__(self, reason: str, status: int = 0) -> None:
        self.status: int = status
        super().__init__(reason)


class UnsupportedOperationError(MinerWatchError):
    """The device family has no equivalent for the requested command."""
