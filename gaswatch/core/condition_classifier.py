"""ConditionClassifier — maps a NetworkSnapshot to exactly one condition.

The rule set is static configuration: a tuple of NetworkCondition records
ordered by descending priority.  The first rule whose predicate holds wins.
NORMAL_ACTIVITY always matches, so classification never comes back empty.
"""

from __future__ import annotations

import logging
from typing import Iterable

from gaswatch.domain.condition import NetworkCondition
from gaswatch.domain.snapshot import NetworkSnapshot
from gaswatch.foundation.calendar import (
    is_business_hours,
    is_late_night,
    is_weekend_morning,
)

logger = logging.getLogger(__name__)


NETWORK_CONGESTION = NetworkCondition(
    id="NETWORK_CONGESTION",
    title="NETWORK CONGESTION",
    reason="High transaction volume detected",
    duration="Typically lasts 1-4 hours",
    priority=10,
    predicate=lambda s: s.gas_price > 50 and s.pending_tx > 200_000,
)

GAS_SURGING = NetworkCondition(
    id="GAS_SURGING",
    title="GAS PRICE SURGING",
    reason="Sudden increase in network activity",
    duration="Monitor for next 30-60 minutes",
    priority=9,
    predicate=lambda s: s.recent_spike_percent > 50,
)

GAS_DROPPING = NetworkCondition(
    id="GAS_DROPPING",
    title="GAS PRICE DROPPING",
    reason="Network congestion clearing",
    duration="Good time to prepare transactions",
    priority=8,
    predicate=lambda s: s.recent_spike_percent < -30,
)

SUSTAINED_HIGH = NetworkCondition(
    id="SUSTAINED_HIGH",
    title="SUSTAINED HIGH GAS",
    reason="Network activity remains elevated",
    duration="Consider waiting if not urgent",
    priority=7,
    predicate=lambda s: s.gas_price > 40 and s.high_duration > 120,
)

PEAK_HOURS = NetworkCondition(
    id="PEAK_HOURS",
    title="PEAK TRADING HOURS",
    reason="High activity during US/EU business hours",
    duration="Usually drops after 9pm UTC",
    priority=6,
    predicate=lambda s: s.gas_price > 25 and is_business_hours(s.day_of_week, s.hour_utc),
)

OPTIMAL_WEEKEND = NetworkCondition(
    id="OPTIMAL_WEEKEND",
    title="OPTIMAL WEEKEND",
    reason="Low activity on weekend mornings",
    duration="Typically lasts until afternoon UTC",
    priority=5,
    predicate=lambda s: s.gas_price < 10 and is_weekend_morning(s.day_of_week, s.hour_utc),
)

LATE_NIGHT = NetworkCondition(
    id="LATE_NIGHT",
    title="LATE NIGHT LOW",
    reason="Reduced trading during off-peak hours",
    duration="Low gas typically lasts until 12pm UTC",
    priority=4,
    predicate=lambda s: s.gas_price < 15 and is_late_night(s.hour_utc),
)

NORMAL_ACTIVITY = NetworkCondition(
    id="NORMAL_ACTIVITY",
    title="NORMAL ACTIVITY",
    reason="Gas prices within typical range",
    duration=None,
    priority=1,
    predicate=lambda _s: True,
)

DEFAULT_CONDITIONS: tuple[NetworkCondition, ...] = tuple(sorted(
    (
        NETWORK_CONGESTION,
        GAS_SURGING,
        GAS_DROPPING,
        SUSTAINED_HIGH,
        PEAK_HOURS,
        OPTIMAL_WEEKEND,
        LATE_NIGHT,
        NORMAL_ACTIVITY,
    ),
    key=lambda c: c.priority,
    reverse=True,
))


class ConditionClassifier:
    """Priority-ordered rule evaluation.

    Usage:
        classifier = ConditionClassifier()
        condition = classifier.classify(snapshot)
    """

    def __init__(
        self,
        conditions: Iterable[NetworkCondition] = DEFAULT_CONDITIONS,
        fallback: NetworkCondition = NORMAL_ACTIVITY,
    ) -> None:
        self._conditions = tuple(sorted(conditions, key=lambda c: c.priority, reverse=True))
        ids = [c.id for c in self._conditions]
        if len(ids) != len(set(ids)):
            raise ValueError("condition ids must be unique")
        self._fallback = fallback

    @property
    def conditions(self) -> tuple[NetworkCondition, ...]:
        return self._conditions

    def classify(self, snapshot: NetworkSnapshot) -> NetworkCondition:
        """Return the highest-priority condition whose predicate holds."""
        for condition in self._conditions:
            if condition.matches(snapshot):
                return condition
        logger.debug("No rule matched; falling back to %s", self._fallback.id)
        return self._fallback
