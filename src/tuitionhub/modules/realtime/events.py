"""
Real-time event names and room naming.
"""

from uuid import UUID

# Client -> server
JOIN_ROOM = "join_room"
LEAVE_ROOM = "leave_room"
SEND_MESSAGE = "send_message"

# Server -> client
RECEIVE_MESSAGE = "receive_message"
TUITION_POST_CREATED = "tuition_post_created"
APPLICATION_RECEIVED = "application_received"
APPLICATION_UPDATED = "application_updated"
ERROR = "error"

GUARDIAN_ROOM_PREFIX = "guardian_"
TUTOR_ROOM_PREFIX = "tutor_"


def guardian_room(user_id: UUID | str) -> str:
    """Personal notification room of a guardian."""
    return f"{GUARDIAN_ROOM_PREFIX}{user_id}"


def tutor_room(user_id: UUID | str) -> str:
    """Personal notification room of a tutor."""
    return f"{TUTOR_ROOM_PREFIX}{user_id}"


def personal_room_owner(room: str) -> str | None:
    """The user id a personal room belongs to, or None for a shared room."""
    for prefix in (GUARDIAN_ROOM_PREFIX, TUTOR_ROOM_PREFIX):
        if room.startswith(prefix):
            return room[len(prefix) :]
    return None
