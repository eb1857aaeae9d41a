"""Statistical helpers over one-minute price history.

Every helper is total: empty or degenerate input yields a safe sentinel
(0 or 0.0) instead of raising.
"""

from __future__ import annotations

import math
from typing import Sequence

SPIKE_LOOKBACK_MINUTES = 30
DEFAULT_ELEVATED_GWEI = 40.0


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 → 3, -2.5 → -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2.0
    return ordered[mid]


def derive_spike_percent(history: Sequence[float]) -> int:
    """Percent change between the newest sample and the one 30 minutes earlier.

    Returns 0 with fewer than 30 samples or a zero reference sample.
    """
    if len(history) < SPIKE_LOOKBACK_MINUTES:
        return 0
    current = history[-1]
    reference = history[-SPIKE_LOOKBACK_MINUTES]
    if reference <= 0:
        return 0
    return round_half_away((current - reference) / reference * 100.0)


def derive_high_duration(
    history: Sequence[float],
    threshold: float = DEFAULT_ELEVATED_GWEI,
) -> int:
    """Consecutive minutes, counted back from the newest sample, above *threshold*."""
    duration = 0
    for value in reversed(history):
        if value > threshold:
            duration += 1
        else:
            break
    return duration


def standard_deviation(history: Sequence[float], window_size: int = 120) -> float:
    """Sample standard deviation (n - 1) of the last *window_size* samples."""
    window = list(history[-window_size:]) if window_size > 0 else []
    if len(window) < 2:
        return 0.0
    avg = sum(window) / len(window)
    variance = sum((v - avg) ** 2 for v in window) / (len(window) - 1)
    return math.sqrt(variance)
