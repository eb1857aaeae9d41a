"""HistoryAggregator — the single source of truth for "what has happened".

Owns two pieces of rolling state:

    - PriceHistory: one sample per minute, fixed capacity, oldest first.
    - Hourly baselines: 168 time-of-week slots, each the mean of a bounded
      accumulator of representative base-fee samples.

Thread-safety note:
    The aggregator is NOT itself locked.  It is mutated only while the
    owning PollingCoordinator holds its state lock.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Iterable, Sequence

from gaswatch.core import metrics
from gaswatch.core.baseline import cold_start_baselines
from gaswatch.foundation.calendar import SLOTS_PER_WEEK

logger = logging.getLogger(__name__)

HISTORY_CAPACITY = 1440
ACCUMULATOR_CAPACITY = 100
REPRESENTATIVE_WINDOW = 50
COLD_START_LEVEL = 15.0
MIN_SNAPSHOT_LEVEL = 8.0


class InvalidSample(ValueError):
    """Raised when a price observation is not a finite, non-negative number."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"invalid price sample: {value!r}")


def _validated(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSample(value)
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise InvalidSample(value)
    return number


class PriceHistory:
    """Fixed-capacity FIFO of one-minute price samples."""

    def __init__(self, capacity: int = HISTORY_CAPACITY, values: Iterable[float] = ()) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._values: deque[float] = deque(values, maxlen=capacity)

    def append(self, value: float) -> None:
        self._values.append(value)

    def replace(self, values: Iterable[float]) -> None:
        self._values = deque(values, maxlen=self._capacity)

    def backfill(self) -> None:
        """Left-pad with the earliest sample until the buffer is full."""
        if not self._values:
            return
        missing = self._capacity - len(self._values)
        if missing > 0:
            self._values.extendleft([self._values[0]] * missing)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def latest(self) -> float | None:
        return self._values[-1] if self._values else None

    def tail(self, count: int) -> list[float]:
        if count <= 0:
            return []
        values = list(self._values)
        return values[-count:]

    def to_list(self) -> list[float]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)


class HistoryAggregator:
    """Maintains PriceHistory and the hourly baseline table.

    Args:
        capacity: Number of one-minute samples retained.
        accumulator_capacity: Samples retained per baseline slot.
        elevated_threshold: Gwei level above which a minute counts as "high".
    """

    def __init__(
        self,
        capacity: int = HISTORY_CAPACITY,
        accumulator_capacity: int = ACCUMULATOR_CAPACITY,
        elevated_threshold: float = metrics.DEFAULT_ELEVATED_GWEI,
    ) -> None:
        self._history = PriceHistory(capacity)
        self._accumulator_capacity = accumulator_capacity
        self._elevated_threshold = elevated_threshold
        self._baselines: list[float] | None = None
        self._accumulator: dict[int, list[float]] = {}

    # ── Price history ────────────────────────────────────────────────────

    def append_price(self, value: float) -> None:
        """Append one observation, trimming the oldest past capacity.

        Raises:
            InvalidSample: If *value* is negative, NaN or infinite.
        """
        self._history.append(_validated(value))

    def backfill(self) -> None:
        self._history.backfill()

    def seed_from_base_fees(self, base_fees: Sequence[float], blocks_per_minute: int = 5) -> bool:
        """Seed an empty history from block-level base fees.

        Consecutive groups of *blocks_per_minute* blocks are averaged into one
        minute sample, then the buffer is backfilled to capacity.  Returns
        True if seeding happened.
        """
        if len(self._history) > 0 or len(base_fees) <= 1:
            return False
        step = max(1, blocks_per_minute)
        minute_prices = [
            metrics.mean(base_fees[i:i + step])
            for i in range(0, len(base_fees), step)
        ]
        self._history.replace(minute_prices)
        self._history.backfill()
        logger.info(
            "Seeded price history from %d blocks (%d minute samples)",
            len(base_fees),
            len(minute_prices),
        )
        return True

    @property
    def history(self) -> list[float]:
        """Copy of the rolling history, oldest first."""
        return self._history.to_list()

    @property
    def history_length(self) -> int:
        return len(self._history)

    @property
    def capacity(self) -> int:
        return self._history.capacity

    @property
    def latest_price(self) -> float | None:
        return self._history.latest

    def average_gwei(self, minutes: int) -> float | None:
        """Mean of the last *minutes* samples, or None if history is shorter."""
        if minutes <= 0 or len(self._history) < minutes:
            return None
        return metrics.mean(self._history.tail(minutes))

    # ── Derived metrics ──────────────────────────────────────────────────

    def spike_percent(self) -> int:
        return metrics.derive_spike_percent(self._history.to_list())

    def high_duration(self) -> int:
        return metrics.derive_high_duration(self._history.to_list(), self._elevated_threshold)

    def volatility(self, window_size: int = 120) -> float:
        return metrics.standard_deviation(self._history.to_list(), window_size)

    # ── Baselines ────────────────────────────────────────────────────────

    def accumulate_baseline(self, raw_samples: Sequence[float], slot_index: int) -> None:
        """Fold *raw_samples* into one slot's evidence and recompute that slot.

        The representative value is the mean of the last 50 raw samples.
        Slots without evidence keep their cold-start default.
        """
        if not 0 <= slot_index < SLOTS_PER_WEEK:
            raise ValueError(f"slot_index out of range: {slot_index}")
        if not raw_samples:
            return

        representative = metrics.mean(raw_samples[-REPRESENTATIVE_WINDOW:])
        samples = self._accumulator.setdefault(slot_index, [])
        samples.append(representative)
        if len(samples) > self._accumulator_capacity:
            del samples[: len(samples) - self._accumulator_capacity]

        if self._baselines is None:
            # Slots restored with evidence but no table are rebuilt from it
            self._baselines = cold_start_baselines(COLD_START_LEVEL)
            for slot, evidence in self._accumulator.items():
                if evidence:
                    self._baselines[slot] = metrics.mean(evidence)
        self._baselines[slot_index] = metrics.mean(samples)
        logger.debug(
            "Baseline slot %d → %.4f gwei (%d samples)",
            slot_index,
            self._baselines[slot_index],
            len(samples),
        )

    @property
    def has_baselines(self) -> bool:
        return self._baselines is not None

    def baseline_table(self) -> list[float]:
        """The established table, or a cold-start table around recent prices."""
        if self._baselines is not None:
            return list(self._baselines)
        level = max(MIN_SNAPSHOT_LEVEL, metrics.median(self._history.tail(60)))
        return cold_start_baselines(level)

    def accumulator(self) -> dict[int, list[float]]:
        return {slot: list(samples) for slot, samples in self._accumulator.items()}

    # ── Restore (persistence) ────────────────────────────────────────────

    def restore(
        self,
        history: Sequence[float] | None = None,
        baselines: Sequence[float] | None = None,
        accumulator: dict[int, list[float]] | None = None,
    ) -> None:
        """Replace state with previously persisted values.

        Callers are expected to have validated the payloads already.
        """
        if history is not None:
            self._history.replace(list(history)[-self._history.capacity:])
        if baselines is not None and len(baselines) == SLOTS_PER_WEEK:
            self._baselines = list(baselines)
        if accumulator is not None:
            self._accumulator = {
                slot: list(samples)[-self._accumulator_capacity:]
                for slot, samples in accumulator.items()
                if 0 <= slot < SLOTS_PER_WEEK
            }
