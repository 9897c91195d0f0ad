"""
Real-time Relay

Room-scoped fan-out of events to connected WebSocket clients.

Each worker process keeps its own sockets. When Redis is available every
event is published on one channel and each worker delivers it to its
local members of the target room, so a notification raised on one worker
reaches a client connected to another. Without Redis delivery is local.
A dropped subscription is re-established in the background.

Delivery is best-effort: a failure to publish or to send to one socket is
logged and never propagates to the caller.
"""

import asyncio
import contextlib
import json
import logging
import uuid
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, WebSocket
from redis.asyncio import Redis
from redis.exceptions import RedisError

from tuitionhub.core.auth import AuthenticatedUser
from tuitionhub.modules.realtime.events import (
    ERROR,
    JOIN_ROOM,
    LEAVE_ROOM,
    RECEIVE_MESSAGE,
    SEND_MESSAGE,
    personal_room_owner,
)

logger = logging.getLogger(__name__)

CHANNEL = "tuitionhub:realtime"
MAX_ROOM_NAME_LENGTH = 200


class RealtimeRelay:
    """Tracks sockets and room membership for this worker and fans events out."""

    def __init__(self, redis: Redis | None = None, reconnect_interval: float = 5.0):
        self._redis = redis
        self._reconnect_interval = reconnect_interval
        self._connections: dict[WebSocket, str] = {}
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._listener: asyncio.Task | None = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def room_members(self, room: str) -> set[WebSocket]:
        return set(self._rooms.get(room, ()))

    # ============================================
    # Membership
    # ============================================

    def connect(self, websocket: WebSocket) -> str:
        """Register an accepted socket; returns its connection id."""
        connection_id = uuid.uuid4().hex
        self._connections[websocket] = connection_id
        logger.debug(f"Realtime connection {connection_id} opened")
        return connection_id

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget a socket and drop it from every room."""
        connection_id = self._connections.pop(websocket, None)
        for room in [r for r, members in self._rooms.items() if websocket in members]:
            self.leave(websocket, room)
        if connection_id:
            logger.debug(f"Realtime connection {connection_id} closed")

    @staticmethod
    def can_join(user: AuthenticatedUser | None, room: str) -> bool:
        """Personal rooms are reserved to their owner; shared rooms are open."""
        owner = personal_room_owner(room)
        if owner is None:
            return True
        return user is not None and str(user.id) == owner

    def join(self, websocket: WebSocket, room: str) -> None:
        self._rooms[room].add(websocket)

    def leave(self, websocket: WebSocket, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[room]

    # ============================================
    # Client messages
    # ============================================

    async def handle_client_message(
        self,
        websocket: WebSocket,
        user: AuthenticatedUser | None,
        message: Any,
    ) -> None:
        """
        Handle one message received from a client.

        Supported messages:
            {"type": "join_room", "room": "..."}
            {"type": "leave_room", "room": "..."}
            {"type": "send_message", "room": "...", "message": ...}

        Problems are reported back to the sender as an ``error`` event.
        """
        if not isinstance(message, dict):
            await self._send_error(websocket, "INVALID_MESSAGE", "Message must be a JSON object")
            return

        message_type = message.get("type")
        room = message.get("room")

        if not isinstance(room, str) or not room or len(room) > MAX_ROOM_NAME_LENGTH:
            await self._send_error(websocket, "INVALID_ROOM", "A valid room name is required")
            return

        if message_type == JOIN_ROOM:
            if not self.can_join(user, room):
                logger.warning(
                    f"Refused join of personal room {room} by "
                    f"{user.id if user else 'anonymous client'}"
                )
                await self._send_error(websocket, "FORBIDDEN", "Not allowed to join this room")
                return
            self.join(websocket, room)

        elif message_type == LEAVE_ROOM:
            self.leave(websocket, room)

        elif message_type == SEND_MESSAGE:
            if websocket not in self._rooms.get(room, ()):
                await self._send_error(websocket, "NOT_IN_ROOM", "Join the room before sending")
                return
            payload = {key: value for key, value in message.items() if key not in ("type", "room")}
            payload["sender_id"] = str(user.id) if user else None
            payload["sender_name"] = user.name if user else None
            payload["sent_at"] = datetime.now(UTC).isoformat()
            await self.publish(
                RECEIVE_MESSAGE,
                payload,
                room=room,
                exclude=self._connections.get(websocket),
            )

        else:
            await self._send_error(
                websocket, "UNKNOWN_MESSAGE_TYPE", f"Unknown message type: {message_type}"
            )

    # ============================================
    # Fan-out
    # ============================================

    async def publish(
        self,
        event: str,
        data: dict[str, Any],
        room: str | None = None,
        exclude: str | None = None,
    ) -> None:
        """
        Emit ``event`` to every member of ``room``, or to every connection
        when ``room`` is None. ``exclude`` is a connection id to skip.
        """
        envelope = {"event": event, "room": room, "data": data, "exclude": exclude}

        if self._redis is not None:
            try:
                await self._redis.publish(CHANNEL, json.dumps(envelope))
                return
            except RedisError as e:
                logger.warning(f"Redis publish of {event} failed, delivering locally: {e}")

        await self._deliver(envelope)

    async def _deliver(self, envelope: Any) -> None:
        event = envelope.get("event") if isinstance(envelope, dict) else None
        room = envelope.get("room") if isinstance(envelope, dict) else None
        if not isinstance(event, str) or not (room is None or isinstance(room, str)):
            logger.warning(f"Ignoring malformed realtime envelope: {envelope!r:.200}")
            return

        exclude = envelope.get("exclude")
        targets = self.room_members(room) if room else set(self._connections)
        message = {"event": event, "room": room, "data": envelope.get("data") or {}}

        for websocket in targets:
            if exclude is not None and self._connections.get(websocket) == exclude:
                continue
            await self._send(websocket, message)

    async def _send(self, websocket: WebSocket, message: dict[str, Any]) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            # Dead socket
            logger.debug(f"Dropping realtime message to closed socket: {e}")
            self.disconnect(websocket)

    async def _send_error(self, websocket: WebSocket, code: str, message: str) -> None:
        await self._send(websocket, {"event": ERROR, "data": {"error": code, "message": message}})

    # ============================================
    # Cross-worker listener
    # ============================================

    def start_listener(self) -> None:
        """Subscribe to the Redis channel in the background (no-op without Redis)."""
        if self._redis is None or self._listener is not None:
            return
        self._listener = asyncio.create_task(self._listen(), name="realtime-listener")

    async def _listen(self) -> None:
        """
        Deliver envelopes published by every worker.

        If the subscription fails or ends, resubscribe every
        ``reconnect_interval`` seconds until the relay is closed.
        """
        while True:
            try:
                await self._consume()
            except RedisError as e:
                logger.error(f"Realtime relay lost its Redis subscription: {e}. Resubscribing...")
            except Exception as e:
                logger.exception(f"Realtime listener failed: {e}. Resubscribing...")
            else:
                logger.warning("Realtime subscription ended. Resubscribing...")
            await asyncio.sleep(self._reconnect_interval)

    async def _consume(self) -> None:
        assert self._redis is not None
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(CHANNEL)
            logger.info(f"Realtime relay subscribed to {CHANNEL}")
            async for item in pubsub.listen():
                if item.get("type") != "message":
                    continue
                try:
                    envelope = json.loads(item["data"])
                except (TypeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed realtime envelope: {e}")
                    continue
                await self._deliver(envelope)
        finally:
            with contextlib.suppress(RedisError):
                await pubsub.unsubscribe(CHANNEL)
            with contextlib.suppress(RedisError):
                await pubsub.aclose()


    async def close(self) -> None:
        """Stop the listener and close every open socket."""
        if self._listener is not None:
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None

        for websocket in list(self._connections):
            with contextlib.suppress(Exception):
                await websocket.close()
            self.disconnect(websocket)


def get_relay(request: Request) -> RealtimeRelay | None:
    """FastAPI dependency: the application's relay, or None if it was started without one."""
    return getattr(request.app.state, "relay", None)
