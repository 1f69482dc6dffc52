"""Time-of-day helpers for service windows."""

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from .config import TIMEZONE

Clock = Callable[[], datetime]

MINUTES_PER_DAY = 24 * 60


def local_now() -> datetime:
    """Current time in the network's time zone."""
    return datetime.now(ZoneInfo(TIMEZONE))


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def in_service_window(current: int, start: int, end: int) -> bool:
    """
    Whether `current` minutes falls inside [start, end].

    Windows with end < start run past midnight (e.g. 06:00-05:00).
    """
    if end < start:
        return current >= start or current <= end
    return start <= current <= end


def minutes_since_start(current: int, start: int) -> int:
    """Minutes elapsed since service start, counting across midnight."""
    return (current - start) % MINUTES_PER_DAY
