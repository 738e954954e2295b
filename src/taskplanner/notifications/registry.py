"""Websocket connections grouped by the user they belong to."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger("taskplanner.notifications.registry")


class ConnectionLimitExceeded(RuntimeError):
    """Raised when the websocket connection pool is exhausted."""


class NotificationRegistry:
    """Tracks the open notification sockets of each user.

    One registry exists per application instance and lives on ``app.state``.
    A user may hold several sockets (one per tab or device); each receives
    every message addressed to that user.
    """

    def __init__(self, *, max_connections: int = 500) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)
        self._max_connections = max_connections
        self._lock = asyncio.Lock()

    def connection_count(self, user_id: int | None = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(sockets) for sockets in self._connections.values())

    async def connect(self, user_id: int, websocket: WebSocket) -> int:
        """Accept ``websocket`` and register it under ``user_id``."""

        async with self._lock:
            if self.connection_count() >= self._max_connections:
                raise ConnectionLimitExceeded("Websocket connection limit reached.")
            self._connections[user_id].add(websocket)
            active = len(self._connections[user_id])
        await websocket.accept()
        logger.debug("User %s connected (%d socket(s))", user_id, active, extra={"user_id": user_id})
        return active

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if not sockets:
                return
            sockets.discard(websocket)
            if not sockets:
                self._connections.pop(user_id, None)

    async def notify_user(self, user_id: int, event: str, payload: dict[str, Any]) -> int:
        """Send ``{"event", "data"}`` to every socket of ``user_id``.

        Returns the number of sockets reached. A user with no open socket is
        not an error; sockets that fail to receive are dropped.
        """

        async with self._lock:
            sockets = list(self._connections.get(user_id, ()))
        if not sockets:
            return 0

        message = jsonable_encoder({"event": event, "data": payload})
        delivered = 0
        stale: list[WebSocket] = []
        for websocket in sockets:
            if websocket.application_state != WebSocketState.CONNECTED:
                stale.append(websocket)
                continue
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                stale.append(websocket)
                continue
            delivered += 1

        if stale:
            async with self._lock:
                remaining = self._connections.get(user_id)
                if remaining is not None:
                    remaining.difference_update(stale)
                    if not remaining:
                        self._connections.pop(user_id, None)
            logger.debug("Pruned %d stale socket(s) for user %s", len(stale), user_id)
        return delivered

    async def reset(self) -> None:
        """Forget every connection (used by tests and on shutdown)."""

        async with self._lock:
            self._connections.clear()


__all__ = ["ConnectionLimitExceeded", "NotificationRegistry"]
