"""
Time-of-day and day-of-week helpers.

All functions take the instant to evaluate explicitly; nothing here reads the
wall clock. Times of day are zero-padded 24-hour "HH:MM" strings, which compare
correctly as plain strings.
"""
import math
import re
from datetime import datetime, tzinfo
from typing import Optional

DAYS_OF_WEEK = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)

TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def localize(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    if tz is None or now.tzinfo is None:
        return now
    return now.astimezone(tz)


def day_of_week(now: datetime, tz: Optional[tzinfo] = None) -> str:
    # isoweekday(): Monday=1 .. Sunday=7, so % 7 puts Sunday at index 0
    return DAYS_OF_WEEK[localize(now, tz).isoweekday() % 7]


def time_of_day(now: datetime, tz: Optional[tzinfo] = None) -> str:
    return localize(now, tz).strftime("%H:%M")


def is_valid_time(value: str) -> bool:
    return bool(TIME_RE.match(value or ""))


def is_within_time_range(start_time: str, end_time: str, current_time: str) -> bool:
    """Inclusive at both ends, minute resolution."""
    return start_time <= current_time <= end_time


def duration_minutes(start: datetime, end: datetime) -> int:
    return round_half_up((end - start).total_seconds() / 60)


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes}m"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def format_time_12hour(time24: str) -> str:
    hours_str, minutes_str = time24.split(":")
    hours = int(hours_str)
    period = "PM" if hours >= 12 else "AM"
    hours12 = hours % 12 or 12
    return f"{hours12}:{minutes_str} {period}"


def time_to_minutes(time24: str) -> int:
    hours, minutes = (int(part) for part in time24.split(":"))
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def day_name(day: str) -> str:
    return day[:1].upper() + day[1:]
