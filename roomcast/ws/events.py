"""Server-to-client event definitions."""

from datetime import datetime
from typing import Any

from .registry import ClientHandle


class RoomEvents:
    """Room membership and relay events."""

    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    NEW_MESSAGE = "new_message"
    BROADCAST = "broadcast"
    USER_TYPING = "user_typing"
    ROOM_LIST = "room_list"


class SystemEvents:
    """Connection-level events."""

    CONNECTED = "connected"
    USERNAME_SET = "username_set"
    PONG = "pong"
    HEARTBEAT = "heartbeat"
    ERROR = "error"


def create_event(event_type: str, **fields: Any) -> dict[str, Any]:
    """Create standard event"""
    event = {"type": event_type, "timestamp": datetime.now().isoformat()}
    event.update({k: v for k, v in fields.items() if v is not None})
    return event


def error_event(code: str, message: str) -> dict[str, Any]:
    return create_event(SystemEvents.ERROR, code=code, message=message)


def member_event(event_type: str, room: str, handle: ClientHandle) -> dict[str, Any]:
    """user_joined / user_left payload describing ``handle``."""
    return create_event(
        event_type,
        room=room,
        connection_id=handle.connection_id,
        username=handle.display_name,
    )


def describe_members(members: list[ClientHandle]) -> list[dict[str, str]]:
    return [{"connection_id": m.connection_id, "username": m.display_name} for m in members]
