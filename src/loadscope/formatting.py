# Copyright (c) Syntropy Systems
"""Display helpers shared by the CLI and the comparison tables."""
from __future__ import annotations

from datetime import datetime, timezone

MS_PER_SECOND = 1000
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE


def format_clock(timestamp_ms: int | None) -> str:
    """Format epoch milliseconds as a UTC HH:MM:SS label."""
    if timestamp_ms is None:
        return "-"
    try:
        ts = datetime.fromtimestamp(timestamp_ms / MS_PER_SECOND, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "-"
    return ts.strftime("%H:%M:%S")


def format_duration(ms: float | None) -> str:
    """Format a duration in milliseconds to human readable."""
    if ms is None or ms != ms:  # NaN
        return "-"

    total = int(ms // MS_PER_SECOND)
    if total >= SECONDS_PER_HOUR:
        h, rem = divmod(total, SECONDS_PER_HOUR)
        m, s = divmod(rem, SECONDS_PER_MINUTE)
        return f"{h}h {m}m {s}s"
    if total >= SECONDS_PER_MINUTE:
        m, s = divmod(total, SECONDS_PER_MINUTE)
        return f"{m}m {s}s"
    return f"{total}s"


def format_latency(ms: float | None) -> str:
    """Format a latency in milliseconds."""
    if ms is None or ms != ms or ms < 0:
        return "-"
    if ms < 1:
        return "<1ms"
    if ms < MS_PER_SECOND:
        return f"{round(ms)}ms"
    return f"{ms / MS_PER_SECOND:.2f}s"
