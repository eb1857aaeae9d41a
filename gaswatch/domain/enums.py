"""Controlled enumerations for the gaswatch domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class TrendLabel(str, Enum):
    """Direction of the last 30 minutes of gas price movement."""

    SURGING = "SURGING"
    RISING = "RISING"
    STABLE = "STABLE"
    FALLING = "FALLING"
    DROPPING = "DROPPING"


class PriceStatus(str, Enum):
    """Coarse affordability bucket for the current gas price."""

    OPTIMAL = "OPTIMAL"
    ACCEPTABLE = "ACCEPTABLE"
    COSTLY = "COSTLY"
    SEVERE = "SEVERE"


class ConnectionStatus(str, Enum):
    """Health of the oracle link as seen by the polling coordinator."""

    CONNECTING = "connecting"
    OK = "ok"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class GasSpeed(str, Enum):
    SLOW = "slow"
    STANDARD = "standard"
    FAST = "fast"


class Operation(str, Enum):
    """Reference transaction kinds used for fiat cost estimates."""

    TRANSFER = "transfer"
    SWAP = "swap"
    MINT = "mint"
