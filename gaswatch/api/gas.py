"""REST endpoints exposing the coordinator's derived views.

Paths:
    GET /api/snapshot   — current network facts, tiers and connection health
    GET /api/forecast   — two-hour forecast with confidence band and best window
    GET /api/condition  — highest-priority matching network condition
    GET /api/averages   — 1/3/7-day average gas price and swap cost
    GET /api/costs      — fiat cost per operation and speed tier

Every endpoint is read-only.  503 means no price has been observed yet.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from gaswatch.services.polling import PollingCoordinator

logger = logging.getLogger(__name__)

AVERAGE_PERIODS_DAYS = (1, 3, 7)


def create_gas_router(coordinator: PollingCoordinator) -> APIRouter:
    """Factory that wires the read endpoints to a concrete coordinator."""

    router = APIRouter(prefix="/api", tags=["gas"])

    def _require_data() -> None:
        if coordinator.snapshot is None:
            raise HTTPException(status_code=503, detail="No gas price observed yet")

    @router.get("/snapshot")
    async def get_snapshot() -> dict[str, Any]:
        _require_data()
        return coordinator.report()

    @router.get("/forecast")
    async def get_forecast() -> dict[str, Any]:
        _require_data()
        result = coordinator.forecast()
        return result.model_dump(mode="json")

    @router.get("/condition")
    async def get_condition() -> dict[str, Any]:
        _require_data()
        return coordinator.condition().to_dict()

    @router.get("/averages")
    async def get_averages() -> dict[str, Any]:
        averages = []
        for days in AVERAGE_PERIODS_DAYS:
            averages.append({
                "days": days,
                "average_gwei": await coordinator.average_gwei(days),
                "swap_cost": await coordinator.average_cost(days),
            })
        return {"averages": averages}

    @router.get("/costs")
    async def get_costs() -> dict[str, Any]:
        costs = coordinator.transaction_costs()
        if costs is None:
            return {"costs": None, "exchange_rate": coordinator.exchange_rate}
        return {
            "costs": {
                speed.value: {op.value: round(cost, 4) for op, cost in by_op.items()}
                for speed, by_op in costs.items()
            },
            "exchange_rate": coordinator.exchange_rate,
        }

    return router
