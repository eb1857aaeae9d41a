"""Cold-start baseline generator.

Until a time-of-week slot has received real evidence, the forecaster still
needs a plausible shape: busier on weekday afternoons (UTC), quieter at
night and on weekends.  The curve is deterministic so two processes started
with the same level agree exactly.
"""

from __future__ import annotations

import math

from gaswatch.foundation.calendar import SLOTS_PER_WEEK

PEAK_HOUR_UTC = 17
HOUR_AMPLITUDE = 0.35
WEEKEND_FACTOR = 0.8


def hour_factor(hour: int) -> float:
    return 1.0 + HOUR_AMPLITUDE * math.cos(2.0 * math.pi * (hour - PEAK_HOUR_UTC) / 24.0)


def day_factor(day: int) -> float:
    return WEEKEND_FACTOR if day in (0, 6) else 1.0


def cold_start_baselines(base_level: float = 15.0) -> list[float]:
    """Return a synthetic 168-slot baseline table centred on *base_level*."""
    level = max(base_level, 1.0)
    table = [0.0] * SLOTS_PER_WEEK
    for day in range(7):
        for hour in range(24):
            table[day * 24 + hour] = level * hour_factor(hour) * day_factor(day)
    return table
