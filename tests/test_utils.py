"""Tests for formatting and redaction helpers."""

import logging

from minerwatch.utils.formatting import format_difficulty, format_hashrate
from minerwatch.utils.logging import resolve_level, setup_logging
from minerwatch.utils.redaction import Redactor


def test_format_difficulty():
    assert format_difficulty(5_822_259_272) == "5.82G"
    assert format_difficulty(1_500) == "1.50K"
    assert format_difficulty(2_000_000_000_000) == "2.00T"
    assert format_difficulty(999) == "999"


def test_format_hashrate():
    assert format_hashrate(None) == "-"
    assert format_hashrate(980.5) == "980.50 GH/s"
    assert format_hashrate(105230.0) == "105.23 TH/s"


def test_redactor_masks_addresses():
    redactor = Redactor()

    assert redactor.redact_ip("192.168.1.42") == "x.x.x.42"
    assert redactor.redact_ip("192.168.1.42:4028") == "x.x.x.42:4028"
    assert redactor.redact_mac("AA:BB:CC:DD:EE:01") == "AA:BB:CC:xx:xx:01"
    assert redactor.redact_mac("AA:BB:CC:DD:EE:02") == "AA:BB:CC:xx:xx:02"
    assert redactor.redact_mac("AA:BB:CC:DD:EE:01") == "AA:BB:CC:xx:xx:01"
    assert redactor.redact_device_id("avalon-192-168-1-42") == "avalon-x.x.x.42"
    assert redactor.redact_worker("bc1qexampleaddress123.rig1") == "bc1q…123.rig1"


def test_disabled_redactor_is_passthrough():
    redactor = Redactor(enabled=False)

    assert redactor.redact_ip("192.168.1.42") == "192.168.1.42"
    assert redactor.redact_device_id("AA:BB:CC:DD:EE:01") == "AA:BB:CC:DD:EE:01"


def test_resolve_level_prefers_argument_then_env(monkeypatch):
    monkeypatch.setenv("LOGLEVEL", "debug")

    assert resolve_level("warning") == "WARNING"
    assert resolve_level() == "DEBUG"

    monkeypatch.setenv("LOGLEVEL", "chatty")
    assert resolve_level() == "INFO"


def test_setup_logging_debug_unmutes_libraries(monkeypatch):
    monkeypatch.delenv("LOGLEVEL", raising=False)

    assert setup_logging() == "INFO"
    assert logging.getLogger("aiosqlite").level == logging.WARNING

    assert setup_logging(debug=True) == "DEBUG"
    assert logging.getLogger("aiosqlite").level == logging.DEBUG
