"""
Time-of-day helpers shared by ingestion and matching.

Telematics exports and WFX records carry times as "HH:MM" or "HH:MM:SS"
strings; the engine works in minutes since midnight.
"""

from datetime import time
from typing import Optional, Union

MINUTES_PER_DAY = 24 * 60


def parse_time_of_day(value: Union[str, time, None]) -> Optional[time]:
    """Parse "H:MM", "HH:MM" or "HH:MM:SS" into a time; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, time):
        return value

    parts = str(value).strip().split(":")
    if len(parts) < 2:
        return None

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(float(parts[2])) if len(parts) > 2 and parts[2] else 0
    except ValueError:
        return None

    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        return None
    return time(hours, minutes, seconds)


def minutes_of_day(value: time) -> float:
    """Minutes elapsed since midnight, seconds included as a fraction."""
    return value.hour * 60 + value.minute + value.second / 60


def duration_to_minutes(value: Optional[str]) -> float:
    """
    Convert an "HH:MM[:SS]" duration into minutes.

    Durations may exceed 24 hours, so this does not go through ``time``.
    Malformed input yields 0.
    """
    if not value or not isinstance(value, str):
        return 0.0

    parts = value.strip().split(":")
    if len(parts) < 2:
        return 0.0

    def _part(raw: str) -> float:
        try:
            return float(raw)
        except ValueError:
            return 0.0

    hours = _part(parts[0])
    minutes = _part(parts[1])
    seconds = _part(parts[2]) if len(parts) > 2 else 0.0
    return hours * 60 + minutes + seconds / 60


def format_time_of_day(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M")
