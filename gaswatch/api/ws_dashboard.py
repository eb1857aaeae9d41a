"""Dashboard WebSocket — pushes live snapshot reports to connected frontends.

Architecture:
    PollingCoordinator  →  price refresh succeeds
                                ↓
                           on_snapshot listener
                                ↓
    FE  ←  /ws/dashboard  ←  report broadcast to every connected client

A client receives the current report immediately on connect.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gaswatch.domain.snapshot import NetworkSnapshot
from gaswatch.services.connection_manager import ConnectionManager
from gaswatch.services.polling import PollingCoordinator

logger = logging.getLogger(__name__)


class DashboardFeed:
    """Bridges coordinator snapshot events to dashboard clients."""

    def __init__(self, manager: ConnectionManager | None = None) -> None:
        self._manager = manager or ConnectionManager()
        self._coordinator: PollingCoordinator | None = None

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    def bind(self, coordinator: PollingCoordinator) -> None:
        self._coordinator = coordinator

    async def on_snapshot(self, snapshot: NetworkSnapshot) -> None:
        """Coordinator listener; skipped when nobody is connected."""
        if self._coordinator is None or self._manager.active_count == 0:
            return
        await self._manager.broadcast_json({"type": "report", "data": self._coordinator.report()})


def create_dashboard_router(feed: DashboardFeed, coordinator: PollingCoordinator) -> APIRouter:
    """Factory that wires the dashboard socket to a feed and coordinator."""

    router = APIRouter()

    @router.websocket("/ws/dashboard")
    async def dashboard(websocket: WebSocket) -> None:
        await feed.manager.connect(websocket)
        try:
            await websocket.send_json({"type": "report", "data": coordinator.report()})
            while True:
                # Clients may send pings; content is ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            feed.manager.disconnect(websocket)

    return router
