"""Fee-market value objects exchanged between the oracle and the core."""

from __future__ import annotations

from pydantic import BaseModel, Field

from gaswatch.domain.enums import GasSpeed


class FeeHistory(BaseModel):
    """Block-level fee samples, already converted to Gwei.

    ``reward_percentiles[i]`` holds the priority fees paid at each requested
    percentile in block ``i``.
    """

    base_fees: list[float] = Field(default_factory=list)
    usage_ratios: list[float] = Field(default_factory=list)
    reward_percentiles: list[list[float]] = Field(default_factory=list)

    model_config = {"frozen": True}


class SpeedTiers(BaseModel):
    """Estimated total gas price (base + priority) per inclusion speed."""

    slow: float = Field(..., ge=0.0)
    standard: float = Field(..., ge=0.0)
    fast: float = Field(..., ge=0.0)

    model_config = {"frozen": True}

    def for_speed(self, speed: GasSpeed) -> float:
        return getattr(self, speed.value)
