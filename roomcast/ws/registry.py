"""Connection and room membership registry.

The registry owns every piece of shared state the server mutates: the
connected clients and the rooms they belong to. It is a plain object created
by whoever runs the server and handed to it, so tests and multiple server
instances each get their own.

All methods are synchronous and must be called from the event loop thread
that owns the registry.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from roomcast.exceptions import UnknownConnectionError
from roomcast.logger import logger


@dataclass
class ClientHandle:
    """A live client session."""

    connection_id: str
    transport: Any
    username: str | None = None
    rooms: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=datetime.now)

    @property
    def display_name(self) -> str:
        return self.username or f"guest-{self.connection_id[:8]}"


@dataclass
class Room:
    """A named group of connections."""

    name: str
    members: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=datetime.now)


class RoomRegistry:
    """Registry of connected clients and their room memberships."""

    def __init__(self) -> None:
        self._clients: dict[str, ClientHandle] = {}
        self._rooms: dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._clients

    # ----------------------------
    # Connections
    # ----------------------------
    def register(self, transport: Any, username: str | None = None) -> ClientHandle:
        """Register a new connection and assign it a unique identifier."""
        connection_id = str(uuid.uuid4())
        while connection_id in self._clients:
            connection_id = str(uuid.uuid4())
        handle = ClientHandle(connection_id=connection_id, transport=transport, username=username)
        self._clients[connection_id] = handle
        logger.debug(f"Registered connection {connection_id} | Connections: {len(self._clients)}")
        return handle

    def get(self, connection_id: str) -> ClientHandle | None:
        return self._clients.get(connection_id)

    def clients(self) -> list[ClientHandle]:
        return list(self._clients.values())

    def set_username(self, connection_id: str, username: str | None) -> ClientHandle:
        handle = self._require(connection_id)
        handle.username = username
        return handle

    def disconnect(self, connection_id: str) -> list[str]:
        """Drop a connection from every room and forget its identifier.

        Returns:
            Names of the rooms the connection was a member of
        """
        handle = self._clients.pop(connection_id, None)
        if handle is None:
            return []

        left = sorted(handle.rooms)
        for name in left:
            self._remove_member(name, connection_id)
        handle.rooms.clear()

        logger.debug(
            f"Unregistered connection {connection_id} | Left rooms: {left} | "
            f"Connections: {len(self._clients)}, rooms: {len(self._rooms)}"
        )
        return left

    # ----------------------------
    # Rooms
    # ----------------------------
    def join(self, connection_id: str, room: str) -> bool:
        """Add a connection to a room, creating the room if needed.

        Returns:
            True if membership changed, False if already a member
        """
        handle = self._require(connection_id)
        existing = self._rooms.get(room)
        if existing is not None and connection_id in existing.members:
            return False

        if existing is None:
            existing = self._rooms[room] = Room(name=room)
            logger.debug(f"Created room {room!r}")
        existing.members.add(connection_id)
        handle.rooms.add(room)
        return True

    def leave(self, connection_id: str, room: str) -> bool:
        """Remove a connection from a room.

        A room left with no members is deleted. Leaving a room the
        connection is not in (or that does not exist) changes nothing.

        Returns:
            True if membership changed
        """
        handle = self._clients.get(connection_id)
        target = self._rooms.get(room)
        if handle is None or target is None or connection_id not in target.members:
            return False

        handle.rooms.discard(room)
        self._remove_member(room, connection_id)
        return True

    def has_room(self, room: str) -> bool:
        return room in self._rooms

    def rooms(self) -> list[str]:
        return sorted(self._rooms)

    def members(self, room: str) -> list[ClientHandle]:
        target = self._rooms.get(room)
        if target is None:
            return []
        return [self._clients[cid] for cid in sorted(target.members) if cid in self._clients]

    def room_names_for(self, connection_id: str) -> list[str]:
        handle = self._clients.get(connection_id)
        return sorted(handle.rooms) if handle else []

    def relay_targets(self, room: str, sender_id: str | None) -> list[ClientHandle]:
        """Members of a room other than the sender.

        Relaying to a room that does not exist has no recipients.
        """
        return [h for h in self.members(room) if h.connection_id != sender_id]

    def broadcast_targets(self, sender_id: str | None) -> list[ClientHandle]:
        """Every registered connection other than the sender."""
        return [h for cid, h in self._clients.items() if cid != sender_id]

    def snapshot(self) -> dict[str, Any]:
        """JSON-friendly view of the registry for status reporting."""
        return {
            "total_connections": len(self._clients),
            "total_rooms": len(self._rooms),
            "rooms": {name: len(room.members) for name, room in sorted(self._rooms.items())},
        }

    # ----------------------------
    # Helpers
    # ----------------------------
    def _require(self, connection_id: str) -> ClientHandle:
        handle = self._clients.get(connection_id)
        if handle is None:
            raise UnknownConnectionError(connection_id)
        return handle

    def _remove_member(self, room: str, connection_id: str) -> None:
        target = self._rooms.get(room)
        if target is None:
            return
        target.members.discard(connection_id)
        if not target.members:
            del self._rooms[room]
            logger.debug(f"Removed empty room {room!r}")
