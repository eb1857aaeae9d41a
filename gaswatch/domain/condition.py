"""NetworkCondition — a static, prioritised rule over a NetworkSnapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from gaswatch.domain.snapshot import NetworkSnapshot

Predicate = Callable[[NetworkSnapshot], bool]


@dataclass(frozen=True)
class NetworkCondition:
    """A human-readable network condition and the predicate that detects it.

    Higher ``priority`` wins when several conditions match.
    """

    id: str
    title: str
    reason: str
    duration: str | None
    priority: int
    predicate: Predicate

    def matches(self, snapshot: NetworkSnapshot) -> bool:
        return bool(self.predicate(snapshot))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "reason": self.reason,
            "duration": self.duration,
            "priority": self.priority,
        }
