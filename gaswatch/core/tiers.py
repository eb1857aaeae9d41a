"""Fee-market derivations from eth_feeHistory-style samples.

Speed tiers:
    slow     = base + median(p25)
    standard = max(base + median(p50), slow * standard_spread)
    fast     = max(base + median(p75), standard * fast_spread)

    Medians are taken over the last ``recent_blocks`` reward rows.  The
    spread multipliers keep the tiers distinct when priority fees are near
    zero; they are tunable, not derived.
"""

from __future__ import annotations

from dataclasses import dataclass

from gaswatch.core import metrics
from gaswatch.domain.enums import PriceStatus
from gaswatch.domain.fees import FeeHistory, SpeedTiers


@dataclass(frozen=True)
class TierConfig:
    """Configurable constants for speed-tier estimation."""

    recent_blocks: int = 20
    standard_spread: float = 1.15
    fast_spread: float = 1.3

    # Used when fee history is unavailable and only a gas price is known
    fallback_slow_factor: float = 0.8
    fallback_fast_factor: float = 1.25


# (lower bound of congestion percent, pending tx proxy), highest first
PENDING_TX_BANDS: tuple[tuple[int, int], ...] = (
    (91, 250_000),
    (81, 200_000),
    (71, 170_000),
    (61, 155_000),
    (51, 145_000),
)
DEFAULT_PENDING_TX = 130_000
CONGESTION_WINDOW = 100

# (exclusive upper bound in gwei, status)
PRICE_STATUS_BANDS: tuple[tuple[float, PriceStatus], ...] = (
    (8.0, PriceStatus.OPTIMAL),
    (20.0, PriceStatus.ACCEPTABLE),
    (50.0, PriceStatus.COSTLY),
)


def derive_speed_tiers(history: FeeHistory, config: TierConfig | None = None) -> SpeedTiers | None:
    """Estimate slow/standard/fast prices, or None when no rewards were reported."""
    cfg = config or TierConfig()
    if not history.reward_percentiles:
        return None

    base_fees = history.base_fees
    latest_base = base_fees[-1] if base_fees else 0.0

    rows = [row for row in history.reward_percentiles if len(row) >= 3]
    recent = rows[-cfg.recent_blocks:] if cfg.recent_blocks > 0 else []
    slow_priority = metrics.median([row[0] for row in recent])
    standard_priority = metrics.median([row[1] for row in recent])
    fast_priority = metrics.median([row[2] for row in recent])

    slow = latest_base + slow_priority
    standard = max(latest_base + standard_priority, slow * cfg.standard_spread)
    fast = max(latest_base + fast_priority, standard * cfg.fast_spread)
    return SpeedTiers(slow=slow, standard=standard, fast=fast)


def fallback_tiers(gas_price: float, config: TierConfig | None = None) -> SpeedTiers:
    """Rough tiers around a single gas price when fee history is missing."""
    cfg = config or TierConfig()
    return SpeedTiers(
        slow=gas_price * cfg.fallback_slow_factor,
        standard=gas_price,
        fast=gas_price * cfg.fallback_fast_factor,
    )


def congestion_percent(usage_ratios: list[float], window: int = CONGESTION_WINDOW) -> int | None:
    """Average block fullness over the last *window* blocks, in percent."""
    recent = usage_ratios[-window:]
    if not recent:
        return None
    return metrics.round_half_away(metrics.mean(recent) * 100.0)


def pending_tx_proxy(congestion: int) -> int:
    """Map congestion percent onto a pending-transaction estimate."""
    for lower, pending in PENDING_TX_BANDS:
        if congestion >= lower:
            return pending
    return DEFAULT_PENDING_TX


def price_status(gas_price: float) -> PriceStatus:
    for upper, status in PRICE_STATUS_BANDS:
        if gas_price < upper:
            return status
    return PriceStatus.SEVERE
