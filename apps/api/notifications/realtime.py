"""WebSocket rooms keyed by family id."""

import logging
from typing import Any

from fastapi import Request, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class FamilyRoomManager:
    """Tracks open sockets per family and fans events out to them."""

    def __init__(self):
        self.rooms: dict[str, set[WebSocket]] = {}

    async def connect(self, family_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.rooms.setdefault(family_id, set()).add(websocket)
        logger.info(f"Socket joined family room {family_id}")

    async def disconnect(self, family_id: str, websocket: WebSocket) -> None:
        room = self.rooms.get(family_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self.rooms[family_id]

    def connection_count(self, family_id: str) -> int:
        return len(self.rooms.get(family_id, ()))

    async def broadcast(self, family_id: str, event: str, data: dict[str, Any]) -> int:
        """
        Send `{"event", "data"}` to every socket in the room.

        Sockets that fail to receive are dropped from the room.

        Returns:
            Number of sockets the message was delivered to
        """
        sockets = list(self.rooms.get(family_id, ()))

        message = {"event": event, "data": data}
        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(message)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(f"Dropping dead socket in family room {family_id}: {e}")
                await self.disconnect(family_id, websocket)
        return delivered


def get_room_manager(request: Request) -> FamilyRoomManager:
    """Dependency: the room manager created with the app."""
    return request.app.state.rooms
