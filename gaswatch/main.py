"""gaswatch — gas price history, forecasting and network-condition service.

This is the application entry point.  It wires the oracle, persistence
store, PollingCoordinator, and HTTP / WebSocket endpoints together.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from gaswatch.api.gas import create_gas_router
from gaswatch.api.ws_dashboard import DashboardFeed, create_dashboard_router
from gaswatch.config import settings
from gaswatch.core.history import HistoryAggregator
from gaswatch.core.tiers import TierConfig
from gaswatch.domain.enums import Operation
from gaswatch.oracle.rpc import JsonRpcOracle
from gaswatch.services.polling import PollingConfig, PollingCoordinator
from gaswatch.store.persistence import FileStore

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ── Oracle & Store ───────────────────────────────────────────────────────────

oracle = JsonRpcOracle(
    rpc_url=settings.rpc_url,
    rate_url=settings.exchange_rate_url,
    asset=settings.exchange_rate_asset,
    currency=settings.exchange_rate_currency,
    timeout=settings.http_timeout_seconds,
)

store = FileStore(settings.state_dir)

# ── State ────────────────────────────────────────────────────────────────────

dashboard_feed = DashboardFeed()

coordinator = PollingCoordinator(
    oracle=oracle,
    store=store,
    aggregator=HistoryAggregator(
        capacity=settings.history_capacity,
        accumulator_capacity=settings.accumulator_capacity,
        elevated_threshold=settings.elevated_threshold_gwei,
    ),
    config=PollingConfig(
        price_interval=settings.price_interval_seconds,
        exchange_rate_interval=settings.exchange_rate_interval_seconds,
        fee_history_interval=settings.fee_history_interval_seconds,
        fee_history_block_count=settings.fee_history_block_count,
        fee_history_percentiles=tuple(settings.fee_history_percentiles),
        failure_threshold=settings.failure_threshold,
        persist_cooldown=timedelta(seconds=settings.persist_cooldown_seconds),
        blocks_per_minute=settings.blocks_per_minute,
    ),
    tier_config=TierConfig(
        recent_blocks=settings.tier_recent_blocks,
        standard_spread=settings.tier_standard_spread,
        fast_spread=settings.tier_fast_spread,
        fallback_slow_factor=settings.tier_fallback_slow_factor,
        fallback_fast_factor=settings.tier_fallback_fast_factor,
    ),
    gas_units={
        Operation.TRANSFER: settings.gas_units_transfer,
        Operation.SWAP: settings.gas_units_swap,
        Operation.MINT: settings.gas_units_mint,
    },
    on_snapshot=dashboard_feed.on_snapshot,
)
dashboard_feed.bind(coordinator)

# ── App ──────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await coordinator.start()
    try:
        yield
    finally:
        await coordinator.stop()
        await oracle.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Gas price history, forecasting and network conditions",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_gas_router(coordinator))
app.include_router(create_dashboard_router(dashboard_feed, coordinator))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    return {"app": settings.app_name, **coordinator.health()}
