"""NetworkSnapshot — an immutable, derived view of network state.

This is a pure data structure.  It contains no opinions and no thresholds.
It captures what the aggregated history says about the network at the
moment it is created.  Rules and the forecaster consume it as input.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class NetworkSnapshot(BaseModel):
    """Point-in-time observation of the gas market.

    Recomputed on every state change and never mutated in place.
    """

    gas_price: float = Field(..., ge=0.0, description="Current gas price in Gwei")
    pending_tx: int = Field(..., ge=0, description="Pending-transaction proxy derived from congestion")
    congestion_percent: int = Field(0, ge=0, description="Average block fullness, percent")
    recent_spike_percent: int = Field(..., description="Percent change over the last 30 minutes")
    high_duration: int = Field(..., ge=0, description="Consecutive minutes above the elevated threshold")
    time_utc: datetime = Field(..., description="When the snapshot was taken (UTC-aware)")
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday … 6 = Saturday")
    price_history: tuple[float, ...] = Field(..., description="Rolling one-minute history, oldest first")
    hourly_baselines: tuple[float, ...] = Field(
        ..., min_length=168, max_length=168,
        description="Typical price per time-of-week slot",
    )

    model_config = {"frozen": True}

    @property
    def hour_utc(self) -> int:
        return self.time_utc.hour

    def summary(self) -> dict:
        """Compact dict without the raw arrays, for APIs and logs."""
        return {
            "gas_price": round(self.gas_price, 4),
            "pending_tx": self.pending_tx,
            "congestion_percent": self.congestion_percent,
            "recent_spike_percent": self.recent_spike_percent,
            "high_duration": self.high_duration,
            "time_utc": self.time_utc.isoformat(),
            "day_of_week": self.day_of_week,
            "history_length": len(self.price_history),
        }
