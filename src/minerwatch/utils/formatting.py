from __future__ import annotations

_SUFFIXES = (
    (1_000_000_000_000, "T"),
    (1_000_000_000, "G"),
    (1_000_000, "M"),
    (1_000, "K"),
)


def format_difficulty(value: int) -> str:
    """Render a share difficulty the way miners display it: 5822259272 -> 5.82G."""
    for scale, suffix in _SUFFIXES:
        if value >= scale:
            return f"{value / scale:.2f}{suffix}"
    return str(value)


def format_hashrate(ghs: float | None) -> str:
    if ghs is None:
        return "-"
    if ghs >= 1000:
        return f"{ghs / 1000:.2f} TH/s"
    return f"{ghs:.2f} GH/s"
