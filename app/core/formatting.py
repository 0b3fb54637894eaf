from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def format_playback_time(milliseconds: Optional[int]) -> str:
    """ms -> 'h:mm:ss' (heures omises si 0), 'N/A' si absent."""
    if not milliseconds:
        return "N/A"
    total_seconds = int(milliseconds) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    prefix = f"{hours}:" if hours > 0 else ""
    return f"{prefix}{minutes}:{seconds:02d}"


def seconds_to_hours_minutes(seconds) -> str:
    try:
        seconds = int(seconds or 0)
    except (TypeError, ValueError):
        seconds = 0
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def format_unix_timestamp(ts) -> Optional[str]:
    try:
        ts = int(ts)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def or_na(value):
    return value if value not in (None, "") else "N/A"
