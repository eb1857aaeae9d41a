"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "gaswatch"
    log_level: str = "INFO"

    # Oracle endpoints
    rpc_url: str = "https://ethereum-rpc.publicnode.com"
    exchange_rate_url: str = "https://api.coingecko.com/api/v3/simple/price?ids=ethereum&vs_currencies=usd"
    exchange_rate_asset: str = "ethereum"
    exchange_rate_currency: str = "usd"
    http_timeout_seconds: float = 10.0

    # Polling cadence
    price_interval_seconds: float = 15.0
    exchange_rate_interval_seconds: float = 60.0
    fee_history_interval_seconds: float = 300.0
    fee_history_block_count: int = 1024
    fee_history_percentiles: list[int] = [25, 50, 75]
    failure_threshold: int = 3

    # Persistence
    state_dir: str = ".gaswatch"
    persist_cooldown_seconds: float = 75.0

    # Rolling state
    history_capacity: int = 1440
    accumulator_capacity: int = 100
    elevated_threshold_gwei: float = 40.0
    blocks_per_minute: int = 5

    # Speed tiers
    tier_recent_blocks: int = 20
    tier_standard_spread: float = 1.15
    tier_fast_spread: float = 1.3
    tier_fallback_slow_factor: float = 0.8
    tier_fallback_fast_factor: float = 1.25

    # Gas units per reference operation
    gas_units_transfer: int = 21_000
    gas_units_swap: int = 130_000
    gas_units_mint: int = 260_000

    model_config = {"env_prefix": "GASWATCH_"}


settings = Settings()
