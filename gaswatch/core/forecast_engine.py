"""ForecastEngine — deterministic short-horizon gas price forecast.

Design principles:
    1. Pure function: accepts a NetworkSnapshot, returns a ForecastResult.
    2. No side effects, no state mutation, no I/O.
    3. All constants are explicit and configurable.

Forecast, evaluated every ``step_minutes`` out to ``horizon_minutes``:

    baseline(m)  = hourly_baselines[slot(now + m)]
    ewma         = Σ p_i · exp(-λ·age_i) / Σ exp(-λ·age_i)     λ = ln 2 / 15
    slope        = (current - ewma) / sample_count
    momentum(m)  = current + slope · exp(-slope_decay · m) · m
    w_m          = momentum_weight · exp(-momentum_decay · m)
    predicted(m) = max(floor, w_m · momentum(m) + (1 - w_m) · baseline(m))

    Point 0 is always the observed current price.

Confidence band:
    width(m) = max(1, stddev · 0.5) · sqrt(m / step)
    low      = max(floor, predicted - width)
    high     = predicted + width

Best window:
    For each of the next 24 hourly offsets, average the baseline of that
    hour and the next one.  The first strict minimum wins.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from gaswatch.core import metrics
from gaswatch.domain.enums import TrendLabel
from gaswatch.domain.forecast import BestWindow, ForecastPoint, ForecastResult
from gaswatch.domain.snapshot import NetworkSnapshot
from gaswatch.foundation.calendar import SLOTS_PER_WEEK, day_of_week, relative_time_label
from gaswatch.foundation.clock import to_utc

FALLBACK_GWEI = 20.0


@dataclass(frozen=True)
class ForecastConfig:
    """Configurable constants for the three-layer blend."""

    step_minutes: int = 5
    horizon_minutes: int = 120
    history_minutes: int = 120
    momentum_window: int = 60

    # EWMA decay per minute, half-life ~15 minutes
    ewma_decay: float = math.log(2) / 15.0
    slope_decay: float = 0.02
    momentum_weight: float = 0.7
    momentum_decay: float = 0.015
    floor_gwei: float = 1.0

    band_volatility_scale: float = 0.5
    band_min_width: float = 1.0
    volatility_window: int = 120

    window_hours: int = 2
    search_hours: int = 24
    padding_fraction: float = 0.1


@dataclass(frozen=True)
class TrendConfig:
    """Spike-percent thresholds for the trend label."""

    surging: float = 30.0
    rising: float = 10.0
    falling: float = -10.0
    dropping: float = -30.0


@dataclass(frozen=True)
class NormalizedSeries:
    historical: list[float]
    forecast: list[float]
    low: list[float]
    high: list[float]
    norm_min: float
    norm_max: float


class ForecastEngine:
    """Stateless forecaster over NetworkSnapshots."""

    def __init__(
        self,
        config: ForecastConfig | None = None,
        trend_config: TrendConfig | None = None,
    ) -> None:
        self._config = config or ForecastConfig()
        self._trend = trend_config or TrendConfig()

    @property
    def config(self) -> ForecastConfig:
        return self._config

    # ── Public API ───────────────────────────────────────────────────────

    def generate(self, snapshot: NetworkSnapshot) -> ForecastResult:
        """Produce a complete, normalized forecast for *snapshot*."""
        cfg = self._config
        history = list(snapshot.price_history)
        baselines = snapshot.hourly_baselines
        now = to_utc(snapshot.time_utc)

        historical = history[-cfg.history_minutes:]
        recent = history[-cfg.momentum_window:]
        stddev = metrics.standard_deviation(history, cfg.volatility_window)

        points = self.forecast_points(
            current_price=snapshot.gas_price,
            recent=recent,
            baselines=baselines,
            now=now,
            stddev=stddev,
        )
        normalized = self.normalize(historical, points)
        best = self.find_best_window(baselines, now)

        spike = snapshot.recent_spike_percent
        return ForecastResult(
            historical_normalized=normalized.historical,
            forecast_normalized=normalized.forecast,
            confidence_low_normalized=normalized.low,
            confidence_high_normalized=normalized.high,
            points=points,
            best_window=best,
            norm_min=normalized.norm_min,
            norm_max=normalized.norm_max,
            change_percent=f"{metrics.round_half_away(spike):+d}%",
            trend_label=self.trend_label(spike),
        )

    def forecast_points(
        self,
        current_price: float,
        recent: Sequence[float],
        baselines: Sequence[float],
        now: datetime,
        stddev: float,
    ) -> list[ForecastPoint]:
        cfg = self._config
        points: list[ForecastPoint] = []
        for minutes in range(0, cfg.horizon_minutes + 1, cfg.step_minutes):
            future = now + timedelta(minutes=minutes)
            baseline = self.hourly_baseline(future, baselines)
            momentum = self.trend_projection(recent, minutes)
            predicted = self.blended_forecast(momentum, baseline, minutes)
            low, high = self.confidence_band(predicted, minutes, stddev)
            points.append(ForecastPoint(
                minutes_from_now=minutes,
                predicted_gwei=predicted,
                confidence_low=low,
                confidence_high=high,
            ))

        # Anchor the forecast to the observed price
        points[0] = ForecastPoint(
            minutes_from_now=0,
            predicted_gwei=current_price,
            confidence_low=current_price,
            confidence_high=current_price,
        )
        return points

    # ── Layer 1: time-of-week baseline ───────────────────────────────────

    @staticmethod
    def hourly_baseline(moment: datetime, baselines: Sequence[float]) -> float:
        if len(baselines) != SLOTS_PER_WEEK:
            return FALLBACK_GWEI
        utc = to_utc(moment)
        index = day_of_week(utc) * 24 + utc.hour
        if not 0 <= index < SLOTS_PER_WEEK:
            return FALLBACK_GWEI
        return baselines[index]

    # ── Layer 2: momentum ────────────────────────────────────────────────

    def trend_projection(self, recent: Sequence[float], minutes_forward: int) -> float:
        if len(recent) < 2:
            return recent[-1] if recent else FALLBACK_GWEI

        decay = self._config.ewma_decay
        count = len(recent)
        weighted_sum = 0.0
        weight_total = 0.0
        for i, value in enumerate(recent):
            weight = math.exp(-decay * (count - 1 - i))
            weighted_sum += value * weight
            weight_total += weight

        weighted_avg = weighted_sum / weight_total
        current = recent[-1]
        slope = (current - weighted_avg) / count
        decayed = slope * math.exp(-self._config.slope_decay * minutes_forward)
        return current + decayed * minutes_forward

    # ── Layer 3: blend ───────────────────────────────────────────────────

    def blended_forecast(self, momentum: float, baseline: float, minutes_forward: int) -> float:
        cfg = self._config
        momentum_weight = cfg.momentum_weight * math.exp(-cfg.momentum_decay * minutes_forward)
        baseline_weight = 1.0 - momentum_weight
        return max(cfg.floor_gwei, momentum_weight * momentum + baseline_weight * baseline)

    # ── Confidence band ──────────────────────────────────────────────────

    def confidence_band(self, predicted: float, minutes_forward: int, stddev: float) -> tuple[float, float]:
        cfg = self._config
        if minutes_forward <= 0:
            return predicted, predicted
        base = max(cfg.band_min_width, stddev * cfg.band_volatility_scale)
        width = base * math.sqrt(minutes_forward / float(cfg.step_minutes))
        return max(cfg.floor_gwei, predicted - width), predicted + width

    # ── Best window ──────────────────────────────────────────────────────

    def find_best_window(self, baselines: Sequence[float], now: datetime) -> BestWindow:
        cfg = self._config
        span = timedelta(hours=cfg.window_hours)
        if len(baselines) != SLOTS_PER_WEEK:
            return BestWindow(
                start=now,
                end=now + span,
                estimated_gwei=FALLBACK_GWEI,
                is_now=True,
                relative_label="NOW",
            )

        best_offset = 0
        best_avg = math.inf
        for offset in range(cfg.search_hours):
            future = to_utc(now + timedelta(hours=offset))
            day = day_of_week(future)
            hour = future.hour
            next_hour = (hour + 1) % 24
            next_day = (day + 1) % 7 if hour == 23 else day

            avg = (baselines[day * 24 + hour] + baselines[next_day * 24 + next_hour]) / 2.0
            if avg < best_avg:
                best_avg = avg
                best_offset = offset

        start = now + timedelta(hours=best_offset)
        return BestWindow(
            start=start,
            end=start + span,
            estimated_gwei=best_avg,
            is_now=best_offset == 0,
            relative_label=relative_time_label(now, start),
        )

    # ── Normalization ────────────────────────────────────────────────────

    def normalize(self, historical: Sequence[float], forecast: Sequence[ForecastPoint]) -> NormalizedSeries:
        predicted = [p.predicted_gwei for p in forecast]
        lows = [p.confidence_low for p in forecast]
        highs = [p.confidence_high for p in forecast]

        lower_pool = list(historical) + lows
        upper_pool = list(historical) + highs
        if not lower_pool:
            return NormalizedSeries([], [], [], [], 0.0, 0.0)

        all_min = min(lower_pool)
        all_max = max(upper_pool)
        padding = (all_max - all_min) * self._config.padding_fraction
        norm_min = all_min - padding
        norm_max = all_max + padding
        norm_range = norm_max - norm_min

        if not norm_range > 0:
            return NormalizedSeries(
                historical=[0.5] * len(historical),
                forecast=[0.5] * len(predicted),
                low=[0.5] * len(lows),
                high=[0.5] * len(highs),
                norm_min=norm_min,
                norm_max=norm_max,
            )

        def scale(value: float) -> float:
            return (value - norm_min) / norm_range

        return NormalizedSeries(
            historical=[scale(v) for v in historical],
            forecast=[scale(v) for v in predicted],
            low=[scale(v) for v in lows],
            high=[scale(v) for v in highs],
            norm_min=norm_min,
            norm_max=norm_max,
        )

    # ── Trend ────────────────────────────────────────────────────────────

    def trend_label(self, spike_percent: float) -> TrendLabel:
        t = self._trend
        if spike_percent > t.surging:
            return TrendLabel.SURGING
        if spike_percent > t.rising:
            return TrendLabel.RISING
        if spike_percent < t.dropping:
            return TrendLabel.DROPPING
        if spike_percent < t.falling:
            return TrendLabel.FALLING
        return TrendLabel.STABLE
