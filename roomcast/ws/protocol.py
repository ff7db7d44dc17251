"""Inbound client message protocol.

Every client frame is a JSON object with a ``type`` field. Frames are
validated into one of the message models below before the server
dispatches them, so handlers never see untyped payloads.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from roomcast.exceptions import ProtocolError


class ClientMessageTypes:
    """Client message type names."""

    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    CHAT_MESSAGE = "chat_message"
    BROADCAST = "broadcast"
    TYPING = "typing"
    SET_USERNAME = "set_username"
    LIST_ROOMS = "list_rooms"
    PING = "ping"


class ErrorCodes:
    """Codes carried by ``error`` events."""

    INVALID_JSON = "invalid_json"
    INVALID_MESSAGE = "invalid_message"
    UNKNOWN_TYPE = "unknown_type"
    INTERNAL = "internal_error"


def _strip_required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


class _ClientMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _RoomMessage(_ClientMessage):
    room: str = Field(..., description="Room name")

    @field_validator("room")
    @classmethod
    def _check_room(cls, value: str) -> str:
        return _strip_required(value)


class JoinRoomMessage(_RoomMessage):
    type: Literal["join_room"]
    username: str | None = Field(None, description="Optional display name to adopt")

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str | None) -> str | None:
        return _strip_required(value) if value is not None else None


class LeaveRoomMessage(_RoomMessage):
    type: Literal["leave_room"]


class ChatMessage(_RoomMessage):
    type: Literal["chat_message"]
    message: str = Field(..., description="Text relayed to the room")


class BroadcastMessage(_ClientMessage):
    type: Literal["broadcast"]
    message: str = Field(..., description="Text relayed to every connection")


class TypingMessage(_RoomMessage):
    type: Literal["typing"]
    is_typing: bool = True


class SetUsernameMessage(_ClientMessage):
    type: Literal["set_username"]
    username: str

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        return _strip_required(value)


class ListRoomsMessage(_ClientMessage):
    type: Literal["list_rooms"]


class PingMessage(_ClientMessage):
    type: Literal["ping"]


ClientMessage = Annotated[
    Union[
        JoinRoomMessage,
        LeaveRoomMessage,
        ChatMessage,
        BroadcastMessage,
        TypingMessage,
        SetUsernameMessage,
        ListRoomsMessage,
        PingMessage,
    ],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)

KNOWN_TYPES = frozenset(
    v for k, v in vars(ClientMessageTypes).items() if not k.startswith("_")
)


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()) if not isinstance(p, int))
        # Drop the union tag the discriminator prepends to field locations
        loc = loc.split(".", 1)[1] if "." in loc else loc
        parts.append(f"{loc}: {item.get('msg')}" if loc else str(item.get("msg")))
    return "; ".join(parts)


def parse_client_message(
    raw: str | bytes,
    *,
    max_room_name_length: int = 64,
    max_username_length: int = 32,
) -> ClientMessage:
    """Decode and validate one client frame.

    Args:
        raw: Frame payload as received from the socket
        max_room_name_length: Longest accepted room name
        max_username_length: Longest accepted username

    Returns:
        The validated message model

    Raises:
        ProtocolError: The frame is not JSON, has an unknown type or
            fails validation
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(ErrorCodes.INVALID_JSON, f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(ErrorCodes.INVALID_MESSAGE, "Message must be a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or msg_type not in KNOWN_TYPES:
        raise ProtocolError(ErrorCodes.UNKNOWN_TYPE, f"Unknown message type: {msg_type}")

    try:
        message = _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(ErrorCodes.INVALID_MESSAGE, f"Invalid {msg_type}: {_describe(e)}") from e

    room = getattr(message, "room", None)
    if room is not None and len(room) > max_room_name_length:
        raise ProtocolError(
            ErrorCodes.INVALID_MESSAGE,
            f"Room name longer than {max_room_name_length} characters",
        )
    username = getattr(message, "username", None)
    if username is not None and len(username) > max_username_length:
        raise ProtocolError(
            ErrorCodes.INVALID_MESSAGE,
            f"Username longer than {max_username_length} characters",
        )
    return message
