"""
Real-time Router

WebSocket endpoint for chat rooms and live notifications.

Connect to ``/ws`` (optionally ``/ws?token=<access token>``) and send JSON
messages of type ``join_room``, ``leave_room`` or ``send_message``.
Personal rooms (``guardian_<id>``, ``tutor_<id>``) require the token of
their owner.
"""

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from tuitionhub.core.auth import AuthenticatedUser, InvalidTokenError, authenticate_token
from tuitionhub.modules.realtime.relay import RealtimeRelay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    user: AuthenticatedUser | None = None
    if token:
        try:
            user = authenticate_token(token)
        except InvalidTokenError as e:
            logger.warning(f"Realtime connection refused: {e.error_code}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    relay: RealtimeRelay = websocket.app.state.relay

    await websocket.accept()
    relay.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            await relay.handle_client_message(websocket, user, message)
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(websocket)
