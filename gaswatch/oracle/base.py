"""Abstract base for price oracles.

A PriceOracle supplies the three raw signals gaswatch consumes: the current
gas price, block-level fee history, and a fiat exchange rate.

Architectural rules:
    1. Oracles return values already converted to Gwei / fiat floats.
    2. Failures are raised as OracleError subclasses, never returned.
    3. No oracle may touch the HistoryAggregator directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from gaswatch.domain.fees import FeeHistory


class OracleError(Exception):
    """Base class for every failure reported by a PriceOracle."""


class TransportError(OracleError):
    """The request never produced a response (network failure, timeout)."""


class ProtocolError(OracleError):
    """The response was unusable: non-success status or undecodable payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamError(OracleError):
    """The remote answered but reported a logical error."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


class PriceOracle(ABC):
    """Source of gas prices, fee history and exchange rates."""

    @abstractmethod
    async def fetch_current_price(self) -> float:
        """Return the current gas price in Gwei.

        Raises:
            OracleError: On any transport, protocol or upstream failure.
        """
        ...

    @abstractmethod
    async def fetch_fee_history(self, block_count: int, percentiles: Sequence[int]) -> FeeHistory:
        """Return base fees, usage ratios and reward percentiles for recent blocks."""
        ...

    @abstractmethod
    async def fetch_exchange_rate(self) -> float:
        """Return the native token's fiat price."""
        ...

    async def aclose(self) -> None:
        """Release network resources.  Default: nothing to release."""
