"""The process-wide source of "now".

Rolling history, baselines and the best-window search are all keyed by UTC
time-of-week, so every datetime gaswatch works with is UTC-aware.  Services
import ``utc_now`` by name so tests can patch it per module.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(moment: datetime) -> datetime:
    """Normalize *moment* to UTC.  Naive datetimes are taken as UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
