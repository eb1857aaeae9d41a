"""Forecast domain models — what the ForecastEngine hands to presenters.

All values are derived fresh per request and never persisted.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from gaswatch.domain.enums import TrendLabel


class ForecastPoint(BaseModel):
    """One predicted price with its confidence bounds."""

    minutes_from_now: int = Field(..., ge=0)
    predicted_gwei: float
    confidence_low: float
    confidence_high: float

    model_config = {"frozen": True}


class BestWindow(BaseModel):
    """The cheapest upcoming two-hour span according to the baseline table."""

    start: datetime
    end: datetime
    estimated_gwei: float
    is_now: bool
    relative_label: str

    model_config = {"frozen": True}


class ForecastResult(BaseModel):
    """Complete forecast on a single shared [norm_min, norm_max] scale."""

    historical_normalized: list[float]
    forecast_normalized: list[float]
    confidence_low_normalized: list[float]
    confidence_high_normalized: list[float]
    points: list[ForecastPoint]
    best_window: BestWindow
    norm_min: float
    norm_max: float
    change_percent: str = Field(..., description='Signed percent string, e.g. "+45%"')
    trend_label: TrendLabel

    model_config = {"frozen": True}

    def denormalize(self, value: float) -> float:
        """Map a normalized value back onto the Gwei scale."""
        return value * (self.norm_max - self.norm_min) + self.norm_min
