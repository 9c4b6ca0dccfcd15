"""Decode AxeOS log-stream lines into structured entries.

Firmware lines usually look like ``I (12345) stratum_task: message``, often
wrapped in ANSI colour codes. Anything else still yields an entry so no line
is ever dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

DEFAULT_COMPONENT = "SYSTEM"


class LogLevel(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"
    VERBOSE = "verbose"


_LEVEL_CODES = {
    "E": LogLevel.ERROR,
    "W": LogLevel.WARNING,
    "I": LogLevel.INFO,
    "D": LogLevel.DEBUG,
    "V": LogLevel.VERBOSE,
}

_ANSI_LINE = re.compile(r"\x1b?\[([0-9;]+)m([A-Z]) \((\d+)\) ([^:]+): (.+?)\x1b?\[0m")
_PLAIN_LINE = re.compile(r"^([A-Z]) \((\d+)\) ([^:]+): (.+)$")
_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


@dataclass
class LogEntry:
    level: LogLevel
    component: str
    message: str
    raw: str
    uptime_ms: int | None = None
    received_at: datetime = field(default_factory=datetime.now)


def _structured(raw: str) -> LogEntry | None:
    match = _ANSI_LINE.search(raw)
    if match:
        _, code, uptime, component, message = match.groups()
    else:
        match = _PLAIN_LINE.match(raw.strip())
        if not match:
            return None
        code, uptime, component, message = match.groups()

    level = _LEVEL_CODES.get(code)
    if level is None:
        return None
    return LogEntry(
        level=level,
        component=component.strip(),
        message=message.strip(),
        raw=raw,
        uptime_ms=int(uptime),
    )


def _heuristic(raw: str) -> LogEntry:
    text = _ANSI_ESCAPE.sub("", raw).strip()

    level = LogLevel.INFO
    for code in ("E", "W", "I", "D"):
        if f" {code} " in f" {text} ":
            level = _LEVEL_CODES[code]
            break

    component = DEFAULT_COMPONENT
    message = text
    prefix, sep, rest = text.partition(":")
    if sep:
        candidate = prefix.rsplit(" ", 1)[-1].strip()
        if candidate:
            component = candidate
            message = rest.strip()

    return LogEntry(level=level, component=component, message=message, raw=raw)


def parse_log_line(raw: str) -> LogEntry:
    """Decode one line; falls back to level ``info`` and component ``SYSTEM``."""
    return _structured(raw) or _heuristic(raw)


def split_frame(frame: str) -> list[str]:
    """Split a text frame into its non-empty lines."""
    return [line for line in frame.splitlines() if line.strip()]
