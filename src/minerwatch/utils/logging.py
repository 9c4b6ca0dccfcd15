from __future__ import annotations

import logging
import os
from typing import Literal

import coloredlogs  # type: ignore[import]

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

LEVELS: tuple[LogLevel, ...] = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty below WARNING; only shown when debugging.
LIBRARY_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiosqlite", "asyncio")


def resolve_level(level: str | None = None) -> LogLevel:
    """Pick the level from the argument, then ``LOGLEVEL``, falling back to INFO."""
    candidate = (level or os.environ.get("LOGLEVEL") or "INFO").upper()
    for known in LEVELS:
        if candidate == known:
            return known
    return "INFO"


def setup_logging(level: str | None = None, *, debug: bool = False) -> LogLevel:
    """Install colored console logging for the CLI and return the level used.

    ``debug`` wins over everything else and also lets the library loggers through,
    which is the only way to see aiohttp request traces.
    """
    resolved: LogLevel = "DEBUG" if debug else resolve_level(level)
    coloredlogs.install(level=resolved, fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    library_level = logging.DEBUG if debug else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    return resolved
