"""Websocket endpoint delivering task notifications to their recipients."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from ...deps import InvalidTokenError, extract_bearer_token, resolve_caller
from ...notifications import ConnectionLimitExceeded, NotificationRegistry

UNAUTHORIZED_CLOSE_CODE = 4401

router = APIRouter()

logger = logging.getLogger("taskplanner.api.notifications")


@router.websocket("/ws/notifications")
async def notification_stream(websocket: WebSocket) -> None:
    """Register the caller's socket and keep it open until the client leaves.

    The bearer token comes from the ``token`` query parameter or the
    ``Authorization`` header. Clients may send ``ping`` to receive ``pong``.
    """

    settings = websocket.app.state.settings
    token = websocket.query_params.get("token") or extract_bearer_token(websocket.headers)
    if not token:
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return
    try:
        caller = resolve_caller(token, settings)
    except InvalidTokenError:
        logger.info("Rejected notification socket with an invalid token.")
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    registry: NotificationRegistry = websocket.app.state.notification_registry
    try:
        await registry.connect(caller.id, websocket)
    except ConnectionLimitExceeded:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    try:
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
    except WebSocketDisconnect:
        logger.debug("User %s closed a notification socket", caller.id, extra={"user_id": caller.id})
    finally:
        await registry.disconnect(caller.id, websocket)
