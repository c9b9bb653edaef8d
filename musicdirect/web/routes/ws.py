"""
WebSocket route for MusicDirect.

Clients connect to ``/ws?room=CODE`` and receive every event for that room
as JSON text frames. Without ``room`` the connection receives every event.

The channel is push-only: inbound frames are read and discarded so that a
client disconnect is noticed promptly, then the connection is detached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from musicdirect.core.hub import Connection

if TYPE_CHECKING:
    from musicdirect.core.hub import BroadcastHub
    from musicdirect.core.rooms import RoomRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])

# Close code sent when the requested room does not exist
CLOSE_ROOM_NOT_FOUND = 4404

# References set during route registration
_hub: BroadcastHub | None = None
_rooms: RoomRegistry | None = None


def register_ws_routes(app, hub: BroadcastHub, rooms: RoomRegistry) -> None:
    """
    Register the WebSocket route with the FastAPI app.

    Args:
        app: FastAPI application instance
        hub: BroadcastHub that owns the connections
        rooms: RoomRegistry used to validate the room code
    """
    global _hub, _rooms
    _hub = hub
    _rooms = rooms
    app.include_router(router)


class WebSocketConnection(Connection):
    """Hub connection backed by a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self.websocket = websocket
        # Starlette sockets do not support concurrent sends
        self._send_lock = asyncio.Lock()

    async def send(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(payload)

    async def close(self) -> None:
        if self.websocket.application_state is WebSocketState.CONNECTED:
            await self.websocket.close()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, room: str | None = None) -> None:
    """Attach the client to the hub until it disconnects."""
    if _hub is None or _rooms is None:
        await websocket.close(code=1011)
        return

    await websocket.accept()

    room_code: str | None = None
    if room:
        existing = await _rooms.get_room_or_none(room)
        if existing is None:
            logger.info("WebSocket rejected: room %s does not exist", room)
            await websocket.close(code=CLOSE_ROOM_NOT_FOUND, reason="Room not found")
            return
        room_code = existing.code

    connection = WebSocketConnection(websocket)
    await _hub.attach(connection, room=room_code)
    try:
        # Acknowledge only once attached, so the client knows it will not
        # miss events published after this frame.
        await connection.send(
            {"type": "connected", "room": room_code, "connectionID": connection.connection_id}
        )
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("WebSocket %d read loop ended: %s", connection.connection_id, e)
    finally:
        await _hub.detach(connection)
