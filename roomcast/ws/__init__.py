"""WebSocket room server for roomcast."""

from .outbound import OutboundChannel
from .protocol import parse_client_message
from .registry import ClientHandle
from .registry import Room
from .registry import RoomRegistry
from .server import RoomWebSocketServer

__all__ = [
    "ClientHandle",
    "OutboundChannel",
    "Room",
    "RoomRegistry",
    "RoomWebSocketServer",
    "parse_client_message",
]
