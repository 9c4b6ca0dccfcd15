"""Wire-format decoders for the two supported device families."""

from minerwatch.protocol.axeos import decode_device_info, encode_settings, snapshot_from_info
from minerwatch.protocol.loglines import LogEntry, LogLevel, parse_log_line
from minerwatch.protocol.wire import extract_bracket_metrics, flatten_sections, parse_sections

__all__ = [
    "LogEntry",
    "LogLevel",
    "decode_device_info",
    "encode_settings",
    "extract_bracket_metrics",
    "flatten_sections",
    "parse_log_line",
    "parse_sections",
    "snapshot_from_info",
]
