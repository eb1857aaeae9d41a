"""PollingCoordinator — owns gaswatch's mutable state and its refresh cycles.

Design notes:
    - Three independent asyncio tasks refresh price, fee history and the
      exchange rate, each on its own interval.
    - An asyncio.Lock guards every mutation of the shared state.  Oracle
      calls happen OUTSIDE the lock so a slow fee-history request never
      delays price polling.
    - After every state change a fresh, immutable NetworkSnapshot is built
      under the lock.  Readers only ever see complete snapshots.
    - Refresh failures are counted, logged and absorbed.  Only sustained
      price failure changes the connection status.
    - Persistence is debounced by comparing the last write time (part of
      this object's state) against the cool-down at each successful update.
      stop() always flushes once.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, TypeVar

from gaswatch.core import tiers as fee_market
from gaswatch.core.condition_classifier import ConditionClassifier
from gaswatch.core.forecast_engine import ForecastEngine
from gaswatch.core.history import HistoryAggregator, InvalidSample
from gaswatch.domain.condition import NetworkCondition
from gaswatch.domain.enums import ConnectionStatus, GasSpeed, Operation, PriceStatus
from gaswatch.domain.fees import FeeHistory, SpeedTiers
from gaswatch.domain.forecast import ForecastResult
from gaswatch.domain.snapshot import NetworkSnapshot
from gaswatch.foundation.calendar import day_of_week, slot_for
from gaswatch.foundation.clock import utc_now
from gaswatch.oracle.base import OracleError, PriceOracle
from gaswatch.store.persistence import KeyValueStore, PersistedState, load_state, save_state

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINUTES_PER_DAY = 1440
GWEI_TO_NATIVE = 1e-9

DEFAULT_GAS_UNITS: dict[Operation, int] = {
    Operation.TRANSFER: 21_000,
    Operation.SWAP: 130_000,
    Operation.MINT: 260_000,
}

_STATUS_MESSAGES = {
    ConnectionStatus.UNAVAILABLE: "UNABLE TO CONNECT",
    ConnectionStatus.DEGRADED: "CONNECTION LOST",
}


@dataclass(frozen=True)
class PollingConfig:
    """Cadence, failure and persistence settings for the coordinator."""

    price_interval: float = 15.0
    exchange_rate_interval: float = 60.0
    fee_history_interval: float = 300.0
    fee_history_block_count: int = 1024
    fee_history_percentiles: tuple[int, ...] = (25, 50, 75)
    failure_threshold: int = 3
    persist_cooldown: timedelta = timedelta(seconds=75)
    blocks_per_minute: int = 5


SnapshotListener = Callable[[NetworkSnapshot], Awaitable[None]]


def _usable_rate(rate: float) -> bool:
    return math.isfinite(rate) and rate > 0


class PollingCoordinator:
    """State-owning service that drives oracle refreshes.

    Args:
        oracle: Source of prices, fee history and exchange rates.
        store: Optional key-value store for persistence across restarts.
        aggregator: Rolling history and baselines (a fresh one by default).
        config: Cadence and failure settings.
        tier_config: Speed-tier constants.
        forecast_engine: Forecaster used by forecast().
        classifier: Rule set used by condition().
        gas_units: Gas consumed by each reference operation.
        on_snapshot: Optional async listener called after each successful
            price refresh.  Runs in a background task.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        store: KeyValueStore | None = None,
        aggregator: HistoryAggregator | None = None,
        config: PollingConfig | None = None,
        tier_config: fee_market.TierConfig | None = None,
        forecast_engine: ForecastEngine | None = None,
        classifier: ConditionClassifier | None = None,
        gas_units: dict[Operation, int] | None = None,
        on_snapshot: SnapshotListener | None = None,
    ) -> None:
        self._oracle = oracle
        self._store = store
        self._aggregator = aggregator or HistoryAggregator()
        self._config = config or PollingConfig()
        self._tier_config = tier_config or fee_market.TierConfig()
        self._forecast_engine = forecast_engine or ForecastEngine()
        self._classifier = classifier or ConditionClassifier()
        self._gas_units = dict(gas_units or DEFAULT_GAS_UNITS)
        self._on_snapshot = on_snapshot

        self._lock = asyncio.Lock()
        self._tasks: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()

        self._tiers: SpeedTiers | None = None
        self._exchange_rate: float | None = None
        self._congestion_percent: int = 0
        self._status = ConnectionStatus.CONNECTING
        self._consecutive_failures = 0
        self._fee_history_failures = 0
        self._exchange_rate_failures = 0
        self._last_updated: datetime | None = None
        self._last_persisted: datetime | None = None
        self._snapshot: NetworkSnapshot | None = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Load persisted state and launch the three refresh cycles."""
        if self._tasks:
            return
        await self.load_persisted()
        self._tasks = [
            asyncio.create_task(self._price_cycle(), name="gaswatch-price"),
            asyncio.create_task(
                self._run_every(self._config.exchange_rate_interval, self.refresh_exchange_rate, "exchange-rate"),
                name="gaswatch-exchange-rate",
            ),
            asyncio.create_task(
                self._run_every(self._config.fee_history_interval, self.refresh_fee_history, "fee-history"),
                name="gaswatch-fee-history",
            ),
        ]
        logger.info("Polling started")

    async def stop(self) -> None:
        """Cancel all cycles, abandoning in-flight calls, then flush state."""
        tasks, self._tasks = self._tasks, []
        tasks.extend(self._background)
        self._background.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.persist()
        logger.info("Polling stopped")

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    # ── Refresh cycles ───────────────────────────────────────────────────

    async def initial_fetch(self) -> bool:
        """Attempt all three sources once, concurrently and independently.

        Fee history is applied before the price so a cold start can seed
        the rolling history from block data.  Returns True if a gas price
        was obtained.
        """
        cfg = self._config
        (fee_history, fee_error), (price, price_error), (rate, rate_error) = await asyncio.gather(
            self._attempt(self._oracle.fetch_fee_history(cfg.fee_history_block_count, cfg.fee_history_percentiles)),
            self._attempt(self._oracle.fetch_current_price()),
            self._attempt(self._oracle.fetch_exchange_rate()),
        )

        now = utc_now()
        async with self._lock:
            if fee_history is not None:
                self._apply_fee_history(fee_history, now)
            else:
                self._fee_history_failures += 1
                logger.warning("Initial fee history fetch failed: %s", fee_error)

            got_price = False
            if price is not None:
                try:
                    self._aggregator.append_price(price)
                    got_price = True
                except InvalidSample as exc:
                    price_error = exc
            if not got_price:
                logger.warning("Initial gas price fetch failed: %s", price_error)

            if fee_history is None and got_price:
                self._tiers = fee_market.fallback_tiers(price, self._tier_config)

            if rate is not None and _usable_rate(rate):
                self._exchange_rate = rate
            else:
                self._exchange_rate_failures += 1
                logger.warning(
                    "Initial exchange rate fetch failed (%s); using last known %s",
                    rate_error,
                    self._exchange_rate,
                )

            if got_price:
                self._aggregator.backfill()
                self._consecutive_failures = 0
                self._status = ConnectionStatus.OK
                self._last_updated = now
            else:
                self._consecutive_failures += 1
                self._status = ConnectionStatus.UNAVAILABLE
            if self._aggregator.history_length:
                self._snapshot = self._build_snapshot(now)
            persist = got_price and self._persist_due(now)

        if persist:
            await self.persist()
        if got_price:
            self._notify()
        return got_price

    async def refresh_price(self) -> bool:
        """Fetch and record the current gas price.  Returns True on success."""
        try:
            price = await self._oracle.fetch_current_price()
            now = utc_now()
            async with self._lock:
                self._aggregator.append_price(price)
                self._consecutive_failures = 0
                if self._status != ConnectionStatus.OK:
                    logger.info("Price feed recovered")
                self._status = ConnectionStatus.OK
                self._last_updated = now
                self._snapshot = self._build_snapshot(now)
                persist = self._persist_due(now)
        except (OracleError, InvalidSample) as exc:
            async with self._lock:
                self._record_price_failure(exc)
            return False

        logger.debug("Gas price %.4f gwei", price)
        if persist:
            await self.persist()
        self._notify()
        return True

    async def refresh_fee_history(self) -> bool:
        """Fetch fee history; update tiers, congestion and baselines."""
        cfg = self._config
        try:
            history = await self._oracle.fetch_fee_history(cfg.fee_history_block_count, cfg.fee_history_percentiles)
        except OracleError as exc:
            async with self._lock:
                self._fee_history_failures += 1
            logger.warning("Fee history refresh failed: %s", exc)
            return False

        now = utc_now()
        async with self._lock:
            self._fee_history_failures = 0
            self._apply_fee_history(history, now)
            if self._aggregator.history_length:
                self._snapshot = self._build_snapshot(now)
            persist = self._persist_due(now)
        if persist:
            await self.persist()
        return True

    async def refresh_exchange_rate(self) -> bool:
        """Fetch the fiat rate; on failure the last known rate is kept."""
        try:
            rate = await self._oracle.fetch_exchange_rate()
        except OracleError as exc:
            async with self._lock:
                self._exchange_rate_failures += 1
            logger.warning("Exchange rate refresh failed, keeping %s: %s", self._exchange_rate, exc)
            return False
        if not _usable_rate(rate):
            async with self._lock:
                self._exchange_rate_failures += 1
            logger.warning("Ignoring unusable exchange rate %r", rate)
            return False

        now = utc_now()
        async with self._lock:
            self._exchange_rate_failures = 0
            self._exchange_rate = rate
            persist = self._persist_due(now)
        if persist:
            await self.persist()
        return True

    # ── Persistence ──────────────────────────────────────────────────────

    async def load_persisted(self) -> None:
        """Restore state from the store, ignoring anything malformed."""
        if self._store is None:
            return
        state = await asyncio.to_thread(load_state, self._store)
        async with self._lock:
            self._aggregator.restore(
                history=state.price_history or None,
                baselines=state.hourly_baselines,
                accumulator=state.accumulator,
            )
            if state.exchange_rate is not None:
                self._exchange_rate = state.exchange_rate
            if self._aggregator.history_length:
                self._snapshot = self._build_snapshot(utc_now())
        logger.info(
            "Loaded persisted state: %d history samples, baselines=%s, rate=%s",
            len(state.price_history),
            state.hourly_baselines is not None,
            state.exchange_rate,
        )

    async def persist(self) -> bool:
        """Write current state to the store immediately."""
        if self._store is None:
            return False
        async with self._lock:
            state = PersistedState(
                hourly_baselines=self._aggregator.baseline_table() if self._aggregator.has_baselines else None,
                accumulator=self._aggregator.accumulator(),
                price_history=self._aggregator.history,
                exchange_rate=self._exchange_rate,
            )
            self._last_persisted = utc_now()
        return await asyncio.to_thread(save_state, self._store, state)

    # ── Read API ─────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> NetworkSnapshot | None:
        """The latest immutable snapshot, or None before any data arrived."""
        return self._snapshot

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def status_message(self) -> str | None:
        return _STATUS_MESSAGES.get(self._status)

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def tiers(self) -> SpeedTiers | None:
        return self._tiers

    @property
    def exchange_rate(self) -> float | None:
        return self._exchange_rate

    @property
    def last_updated(self) -> datetime | None:
        return self._last_updated

    @property
    def last_persisted(self) -> datetime | None:
        return self._last_persisted

    def forecast(self) -> ForecastResult | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return self._forecast_engine.generate(snapshot)

    def condition(self) -> NetworkCondition | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return self._classifier.classify(snapshot)

    async def average_gwei(self, days: int) -> float | None:
        """Mean gas price over *days*, or None until that much history exists."""
        async with self._lock:
            return self._aggregator.average_gwei(days * MINUTES_PER_DAY)

    async def average_cost(self, days: int, gas_units: int | None = None) -> float | None:
        """Fiat cost of an operation at the *days*-average gas price.

        Defaults to a swap.  None until enough history and a rate exist.
        """
        units = gas_units if gas_units is not None else self._gas_units[Operation.SWAP]
        async with self._lock:
            avg = self._aggregator.average_gwei(days * MINUTES_PER_DAY)
            rate = self._exchange_rate
        if avg is None or rate is None:
            return None
        return avg * units * GWEI_TO_NATIVE * rate

    def transaction_costs(self) -> dict[GasSpeed, dict[Operation, float]] | None:
        """Fiat cost of each reference operation at each speed tier."""
        tiers, rate = self._tiers, self._exchange_rate
        if tiers is None or rate is None:
            return None
        return {
            speed: {
                op: tiers.for_speed(speed) * units * GWEI_TO_NATIVE * rate
                for op, units in self._gas_units.items()
            }
            for speed in GasSpeed
        }

    def price_status(self) -> PriceStatus | None:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return fee_market.price_status(snapshot.gas_price)

    def report(self) -> dict[str, Any]:
        """Dashboard summary: snapshot facts plus tiers and connection health."""
        snapshot = self._snapshot
        condition = self.condition()
        price_status = self.price_status()
        return {
            "status": self._status.value,
            "status_message": self.status_message,
            "consecutive_failures": self._consecutive_failures,
            "last_updated": self._last_updated.isoformat() if self._last_updated else None,
            "snapshot": snapshot.summary() if snapshot else None,
            "price_status": price_status.value if price_status else None,
            "tiers": self._tiers.model_dump() if self._tiers else None,
            "exchange_rate": self._exchange_rate,
            "condition": condition.to_dict() if condition else None,
        }

    def health(self) -> dict[str, Any]:
        return {
            "status": self._status.value,
            "running": self.running,
            "consecutive_failures": self._consecutive_failures,
            "fee_history_failures": self._fee_history_failures,
            "exchange_rate_failures": self._exchange_rate_failures,
            "history_length": self._aggregator.history_length,
            "baselines_established": self._aggregator.has_baselines,
            "last_updated": self._last_updated.isoformat() if self._last_updated else None,
            "last_persisted": self._last_persisted.isoformat() if self._last_persisted else None,
        }

    # ── Internals ────────────────────────────────────────────────────────

    async def _price_cycle(self) -> None:
        try:
            await self.initial_fetch()
        except Exception:
            logger.exception("Initial fetch crashed")
        await self._run_every(self._config.price_interval, self.refresh_price, "price")

    async def _run_every(self, interval: float, refresh: Callable[[], Awaitable[bool]], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await refresh()
            except Exception:
                logger.exception("%s refresh crashed; retrying next tick", name)

    @staticmethod
    async def _attempt(call: Awaitable[T]) -> tuple[T | None, OracleError | None]:
        try:
            return await call, None
        except OracleError as exc:
            return None, exc

    def _apply_fee_history(self, history: FeeHistory, now: datetime) -> None:
        """Must be called while holding self._lock."""
        derived = fee_market.derive_speed_tiers(history, self._tier_config)
        if derived is not None:
            self._tiers = derived
            logger.debug(
                "Tiers slow=%.4f standard=%.4f fast=%.4f",
                derived.slow, derived.standard, derived.fast,
            )

        congestion = fee_market.congestion_percent(history.usage_ratios)
        if congestion is not None:
            self._congestion_percent = congestion

        self._aggregator.seed_from_base_fees(history.base_fees, self._config.blocks_per_minute)
        if history.base_fees:
            self._aggregator.accumulate_baseline(history.base_fees, slot_for(now))

    def _record_price_failure(self, exc: Exception) -> None:
        """Must be called while holding self._lock."""
        self._consecutive_failures += 1
        logger.warning(
            "Gas price refresh failed (%d consecutive): %s",
            self._consecutive_failures,
            exc,
        )
        if self._consecutive_failures >= self._config.failure_threshold:
            if self._status != ConnectionStatus.DEGRADED:
                logger.error("Price feed degraded after %d failures", self._consecutive_failures)
            self._status = ConnectionStatus.DEGRADED

    def _persist_due(self, now: datetime) -> bool:
        """Must be called while holding self._lock."""
        if self._store is None:
            return False
        if self._last_persisted is not None and now - self._last_persisted <= self._config.persist_cooldown:
            return False
        self._last_persisted = now
        return True

    def _build_snapshot(self, now: datetime) -> NetworkSnapshot:
        """Must be called while holding self._lock, with non-empty history."""
        history = self._aggregator.history
        return NetworkSnapshot(
            gas_price=history[-1],
            pending_tx=fee_market.pending_tx_proxy(self._congestion_percent),
            congestion_percent=self._congestion_percent,
            recent_spike_percent=self._aggregator.spike_percent(),
            high_duration=self._aggregator.high_duration(),
            time_utc=now,
            day_of_week=day_of_week(now),
            price_history=tuple(history),
            hourly_baselines=tuple(self._aggregator.baseline_table()),
        )

    def _notify(self) -> None:
        if self._on_snapshot is None or self._snapshot is None:
            return
        task = asyncio.create_task(self._deliver(self._snapshot))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _deliver(self, snapshot: NetworkSnapshot) -> None:
        try:
            await self._on_snapshot(snapshot)
        except Exception as exc:
            logger.error("Snapshot listener failed: %s", exc, exc_info=True)
