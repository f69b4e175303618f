"""
nssportal.api.routes.ws — Live notification WebSocket
======================================================

Browsers can't set headers on a WebSocket handshake, so the bearer token
comes in the ``token`` query parameter.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from nssportal.api.deps import Portal, decode_token, get_portal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["live"])


@router.websocket("/ws")
async def live_socket(
    websocket: WebSocket,
    portal: Annotated[Portal, Depends(get_portal)],
    token: str = Query(""),
):
    try:
        user_id = decode_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await portal.hub.connect(user_id, websocket)
    try:
        while True:
            # Clients only listen; text or binary frames they send are ignored.
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await portal.hub.disconnect(user_id, websocket)
