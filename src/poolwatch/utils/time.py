from __future__ import annotations

import time
from datetime import datetime, timezone

MS_PER_HOUR = 3_600_000


def utc_now_s() -> float:
    """Unix epoch seconds (float)."""
    return time.time()


def to_ms(seconds: float) -> int:
    """Seconds -> integer milliseconds."""
    return int(round(seconds * 1000))


def utc_dt(ts: float | int) -> datetime:
    """Epoch seconds -> timezone-aware UTC datetime."""
    return datetime.fromtimestamp(float(ts), tz=timezone.utc)


def seconds_since(ts_past: float, now: float | None = None) -> float:
    """Non-negative time since past (clamped at 0)."""
    now = utc_now_s() if now is None else now
    return max(0.0, now - ts_past)


def humanize_ms(ms: int) -> str:
    """12_345_000 -> '3h 25m'; sub-minute durations render as '0m'."""
    total_min = max(0, int(ms)) // 60_000
    days, rem = divmod(total_min, 1440)
    hours, minutes = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def outside_label(minutes: int) -> str:
    """Whole hours once past the hour ('3h'), minutes before that ('10m')."""
    return f"{minutes // 60}h" if minutes >= 60 else f"{max(0, minutes)}m"
