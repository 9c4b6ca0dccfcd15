"""Decoding for the cgminer text protocol spoken on TCP port 4028.

Replies come in two shapes. Pipe-delimited sections::

    STATUS=S,When=1705104000,Code=11,Msg=Summary|SUMMARY,Elapsed=86400,MHS av=105230000.00|

and inline bracket metrics, used by ``estats``::

    Ver[1292Q-20240116] GHSspd[96557.33] Temp[31] PS[0 1215 2428 65 1601 2429 1673]

Neither decoder raises. Missing data is simply missing from the result.
"""

from __future__ import annotations

import math
import re

Sections = dict[str, dict[str, str]]

_BRACKET_TOKEN = re.compile(r"(\w+)\[([^\]]*)\]")
_SECTION_SEPARATOR = "|"
_FIELD_SEPARATOR = ","


def _split_pair(token: str) -> tuple[str, str]:
    key, _, value = token.partition("=")
    return key.strip(), value.strip()


def parse_sections(raw: str | None) -> Sections:
    """Decode pipe-delimited sections into ``{section: {key: value}}``.

    The first token of a section names it. When that token is itself a
    ``Key=Value`` pair (``STATUS=S``, ``POOL=0``) the section is named after
    the key and the pair is kept as an entry. A repeated section name
    replaces the earlier one.
    """
    if not raw:
        return {}

    sections: Sections = {}
    for segment in raw.strip("\x00").split(_SECTION_SEPARATOR):
        tokens = [token.strip() for token in segment.split(_FIELD_SEPARATOR)]
        if not tokens or not tokens[0]:
            continue

        head = tokens[0]
        entries: dict[str, str] = {}
        if "=" in head:
            name, value = _split_pair(head)
            if not name:
                continue
            entries[name] = value
        else:
            name = head

        for token in tokens[1:]:
            if "=" not in token:
                continue
            key, value = _split_pair(token)
            if key:
                entries[key] = value

        sections[name] = entries
    return sections


def flatten_sections(sections: Sections) -> dict[str, str]:
    """Merge every section's entries into one mapping, later sections winning."""
    flat: dict[str, str] = {}
    for entries in sections.values():
        flat.update(entries)
    return flat


def extract_bracket_metrics(raw: str | None) -> dict[str, str]:
    """Collect every ``Key[Value]`` token; a repeated key keeps its last value."""
    if not raw:
        return {}
    return {key: value.strip() for key, value in _BRACKET_TOKEN.findall(raw)}


def to_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        number = float(value.strip().rstrip("%"))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_int(value: str | None) -> int | None:
    number = to_float(value)
    return None if number is None else int(number)


def last_number(value: str | None) -> float:
    """Return the last whitespace-separated token as a float, or 0.0."""
    if not value:
        return 0.0
    tokens = value.split()
    if not tokens:
        return 0.0
    return to_float(tokens[-1]) or 0.0
