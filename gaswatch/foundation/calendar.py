"""Time-of-week helpers shared by the baseline table, forecaster and rules.

Day-of-week numbering is 0 = Sunday … 6 = Saturday throughout gaswatch,
which is NOT Python's ``datetime.weekday()`` (0 = Monday).
"""

from __future__ import annotations

from datetime import datetime

from gaswatch.foundation.clock import to_utc

SLOTS_PER_WEEK = 168


def day_of_week(moment: datetime) -> int:
    """Sunday-based day of week (0 = Sunday) of *moment* in UTC."""
    return (to_utc(moment).weekday() + 1) % 7


def slot_index(day: int, hour: int) -> int:
    """Baseline table index for a (day-of-week, UTC hour) pair."""
    if not 0 <= day < 7 or not 0 <= hour < 24:
        raise ValueError(f"invalid time-of-week: day={day} hour={hour}")
    return day * 24 + hour


def slot_for(moment: datetime) -> int:
    utc = to_utc(moment)
    return slot_index(day_of_week(utc), utc.hour)


# ── Named windows ────────────────────────────────────────────────────────────

def is_business_hours(day: int, hour: int) -> bool:
    """Weekday (Mon–Fri) between 13:00 and 21:00 UTC."""
    return 1 <= day <= 5 and 13 <= hour < 21


def is_weekend_morning(day: int, hour: int) -> bool:
    """Saturday or Sunday before noon UTC."""
    return day in (0, 6) and 0 <= hour < 12


def is_late_night(hour: int) -> bool:
    """Any day, 00:00–06:00 UTC."""
    return 0 <= hour < 6


# ── Labels ───────────────────────────────────────────────────────────────────

def relative_time_label(now: datetime, target: datetime) -> str:
    """Short upper-case label such as ``NOW``, ``IN 45M`` or ``IN 3H``."""
    minutes = int((target - now).total_seconds() // 60)
    if minutes <= 0:
        return "NOW"
    if minutes < 60:
        return f"IN {minutes}M"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"IN {hours}H"
    return f"IN {hours}H {rest}M"
