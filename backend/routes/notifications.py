"""
WebSocket notification channel.

Connect with /api/ws?token=<jwt>. Bad or missing tokens are closed with 1008
before the handshake completes; a full hub closes with 1013.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from services.notification_service import authenticate_socket, hub

logger = logging.getLogger(__name__)
router = APIRouter(tags=["notifications"])


@router.websocket("/api/ws")
async def notifications_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    user = await authenticate_socket(token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not await hub.connect(websocket, user.id, user.role):
        return

    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_message(user.id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(user.id, websocket)
