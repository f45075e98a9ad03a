"""WebSocket endpoint for live family updates."""

import asyncio
from collections.abc import Callable
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from apps.api.auth.dependencies import load_family_context, user_from_token
from apps.api.db import get_session_factory
from apps.api.notifications import FamilyRoomManager
from packages.shared.exceptions import AppException

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws/families/{family_id}")
async def family_socket(
    websocket: WebSocket,
    family_id: UUID,
    token: str | None = Query(None),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> None:
    """
    Join the family's room and receive `{"event", "data"}` messages.

    The access token is passed as `?token=`; a missing or invalid token,
    or a user outside the family, closes the socket with 1008.
    """
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    def _check_membership() -> None:
        db = session_factory()
        try:
            user = user_from_token(db, token)
            load_family_context(db, user, family_id)
        finally:
            db.close()

    try:
        await asyncio.to_thread(_check_membership)
    except AppException as e:
        logger.info(f"Rejected socket for family {family_id}: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    rooms: FamilyRoomManager = websocket.app.state.rooms
    room = str(family_id)
    await rooms.connect(room, websocket)
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
    except WebSocketDisconnect:
        pass
    finally:
        await rooms.disconnect(room, websocket)
