"""
nssportal.services.live_channel — Live Push over WebSockets
============================================================

The live channel only serves clients that are connected *right now*; the
durable inbox is what guarantees delivery.  Each connected socket joins the
private room ``user-<id>`` of the authenticated user, and broadcasts go to
every socket.

:class:`WebSocketHub` implements the :class:`LiveChannel` protocol on top of
FastAPI/Starlette WebSockets.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def room_for(user_id: int) -> str:
    return f"user-{user_id}"


@runtime_checkable
class LiveChannel(Protocol):
    """Contract consumed by the live-push channel."""

    async def emit_to_recipient(
        self, recipient_id: int, event_name: str, payload: dict[str, Any]
    ) -> None:
        ...

    async def broadcast(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class WebSocketHub:
    """Room registry of connected WebSockets."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self._rooms.values())

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        """Accept *websocket* and join it to the user's private room."""
        await websocket.accept()
        room = room_for(user_id)
        async with self._lock:
            self._rooms[room].add(websocket)
        await websocket.send_json({"event": "room-joined", "data": {"room": room, "userId": user_id}})
        logger.info("WebSocket joined %s (%d connected)", room, self.connection_count)

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        room = room_for(user_id)
        async with self._lock:
            sockets = self._rooms.get(room)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    del self._rooms[room]
        logger.info("WebSocket left %s (%d connected)", room, self.connection_count)

    async def emit_to_recipient(
        self, recipient_id: int, event_name: str, payload: dict[str, Any]
    ) -> None:
        """Send to every socket in the recipient's room.

        A recipient with no open socket is not an error; they will read the
        inbox later.  A socket that fails to send is dropped.
        """
        room = room_for(recipient_id)
        async with self._lock:
            targets = list(self._rooms.get(room, ()))
        await self._send_all(targets, event_name, payload, room=room)

    async def broadcast(self, event_name: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            targets = [ws for sockets in self._rooms.values() for ws in sockets]
        await self._send_all(targets, event_name, payload, room=None)

    async def _send_all(
        self,
        targets: list[WebSocket],
        event_name: str,
        payload: dict[str, Any],
        *,
        room: str | None,
    ) -> None:
        message = {
            "event": event_name,
            "data": payload,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        dead: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json(message)
            except Exception:
                logger.warning("Dropping unreachable WebSocket in %s", room or "broadcast")
                dead.append(ws)
        if dead:
            async with self._lock:
                for sockets in self._rooms.values():
                    sockets.difference_update(dead)
