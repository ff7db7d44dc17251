"""WebSocket room broadcast server."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, WebSocketException

from roomcast.config import Settings
from roomcast.exceptions import AuthenticationError, ProtocolError
from roomcast.logger import logger
from .auth import AUTH_FAILED_CLOSE_CODE, AUTH_FAILED_REASON, authenticate
from .events import RoomEvents, SystemEvents, create_event, describe_members, error_event, member_event
from .outbound import OutboundChannel
from .protocol import (
    BroadcastMessage,
    ChatMessage,
    ClientMessageTypes,
    ErrorCodes,
    JoinRoomMessage,
    LeaveRoomMessage,
    SetUsernameMessage,
    TypingMessage,
    parse_client_message,
)
from .registry import ClientHandle, RoomRegistry
from .utils import close_websocket_safely, is_websocket_closed

Handler = Callable[[ClientHandle, Any], Awaitable[None]]


class RoomWebSocketServer:
    """Room broadcast server.

    Design goals:
    - All shared state lives in an injected RoomRegistry
    - Inbound frames are validated before dispatch
    - Single-writer bounded outbound queue per connection
    - Each inbound message is handled to completion before the next one
    """

    def __init__(self, settings: Settings | None = None, registry: RoomRegistry | None = None):
        self.settings = settings or Settings()
        self.registry = registry if registry is not None else RoomRegistry()
        self.connections: dict[str, ServerConnection] = {}
        self.running = False
        self.started_at: datetime | None = None
        self.shutdown_event = asyncio.Event()
        self.ready = asyncio.Event()
        self._server: Server | None = None
        self._handlers: dict[str, Handler] = {
            ClientMessageTypes.JOIN_ROOM: self._handle_join_room,
            ClientMessageTypes.LEAVE_ROOM: self._handle_leave_room,
            ClientMessageTypes.CHAT_MESSAGE: self._handle_chat_message,
            ClientMessageTypes.BROADCAST: self._handle_broadcast,
            ClientMessageTypes.TYPING: self._handle_typing,
            ClientMessageTypes.SET_USERNAME: self._handle_set_username,
            ClientMessageTypes.LIST_ROOMS: self._handle_list_rooms,
            ClientMessageTypes.PING: self._handle_ping,
        }

    @property
    def host(self) -> str:
        return self.settings.host

    @property
    def port(self) -> int:
        return self.settings.port

    @property
    def bound_port(self) -> int | None:
        """Port actually listened on, once the server is ready."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def handle_connection(self, websocket: ServerConnection) -> None:
        """Handle new WebSocket connection"""
        try:
            authenticate(websocket, self.settings.auth_token)
        except AuthenticationError:
            logger.warning(f"Rejected connection from {getattr(websocket, 'remote_address', None)}: bad token")
            await close_websocket_safely(
                websocket, code=AUTH_FAILED_CLOSE_CODE, reason=AUTH_FAILED_REASON
            )
            return

        outbound = OutboundChannel(
            websocket,
            maxsize=self.settings.outbound_queue_size,
            policy=self.settings.slow_consumer_policy,
            send_timeout=self.settings.send_timeout,
        )
        handle = self.registry.register(outbound)
        connection_id = handle.connection_id
        outbound.name = f"conn-{connection_id}"
        outbound.start()
        self.connections[connection_id] = websocket

        logger.info(f"New WebSocket connection: {connection_id} | Connections: {len(self.registry)}")

        try:
            await self._send(
                handle,
                create_event(
                    SystemEvents.CONNECTED,
                    connection_id=connection_id,
                    username=handle.display_name,
                ),
            )

            # Message handling loop
            async for raw in websocket:
                await self._handle_frame(handle, raw)

        except ConnectionClosed:
            logger.info(f"WebSocket connection closed: {connection_id}")
        except WebSocketException as e:
            logger.error(f"WebSocket error for {connection_id}: {e}")
        finally:
            await self._cleanup_connection(connection_id)

    async def _handle_frame(self, handle: ClientHandle, raw: str | bytes) -> None:
        """Validate and dispatch one inbound frame."""
        try:
            message = parse_client_message(
                raw,
                max_room_name_length=self.settings.max_room_name_length,
                max_username_length=self.settings.max_username_length,
            )
        except ProtocolError as e:
            logger.warning(f"Rejected message from {handle.connection_id}: {e.message}")
            await self._send(handle, error_event(e.code, e.message))
            return

        logger.debug(f"Processing message: type={message.type}, connection={handle.connection_id}")
        try:
            await self._handlers[message.type](handle, message)
        except Exception as e:
            logger.exception(f"Error handling {message.type} from {handle.connection_id}: {e}")
            await self._send(
                handle, error_event(ErrorCodes.INTERNAL, f"Message handling error: {e!s}")
            )

    # ----------------------------
    # Message handlers
    # ----------------------------
    async def _handle_join_room(self, handle: ClientHandle, message: JoinRoomMessage) -> None:
        if message.username:
            self.registry.set_username(handle.connection_id, message.username)

        changed = self.registry.join(handle.connection_id, message.room)
        members = self.registry.members(message.room)
        await self._send(
            handle,
            create_event(
                RoomEvents.ROOM_JOINED,
                room=message.room,
                members=describe_members(members),
            ),
        )
        if not changed:
            logger.debug(f"{handle.connection_id} already in room {message.room!r}")
            return

        await self._fan_out(
            self.registry.relay_targets(message.room, handle.connection_id),
            member_event(RoomEvents.USER_JOINED, message.room, handle),
        )
        logger.info(f"{handle.display_name} joined room {message.room!r} | Members: {len(members)}")

    async def _handle_leave_room(self, handle: ClientHandle, message: LeaveRoomMessage) -> None:
        changed = self.registry.leave(handle.connection_id, message.room)
        await self._send(handle, create_event(RoomEvents.ROOM_LEFT, room=message.room))
        if not changed:
            return

        await self._fan_out(
            self.registry.relay_targets(message.room, handle.connection_id),
            member_event(RoomEvents.USER_LEFT, message.room, handle),
        )
        logger.info(f"{handle.display_name} left room {message.room!r}")

    async def _handle_chat_message(self, handle: ClientHandle, message: ChatMessage) -> None:
        if not self.registry.has_room(message.room):
            logger.debug(f"Dropped message from {handle.connection_id} to missing room {message.room!r}")
            return

        await self._fan_out(
            self.registry.relay_targets(message.room, handle.connection_id),
            create_event(
                RoomEvents.NEW_MESSAGE,
                room=message.room,
                message=message.message,
                username=handle.display_name,
                sender_id=handle.connection_id,
            ),
        )

    async def _handle_broadcast(self, handle: ClientHandle, message: BroadcastMessage) -> None:
        delivered = await self._fan_out(
            self.registry.broadcast_targets(handle.connection_id),
            create_event(
                RoomEvents.BROADCAST,
                message=message.message,
                username=handle.display_name,
                sender_id=handle.connection_id,
            ),
        )
        logger.debug(f"Broadcast from {handle.connection_id} queued for {delivered} connections")

    async def _handle_typing(self, handle: ClientHandle, message: TypingMessage) -> None:
        await self._fan_out(
            self.registry.relay_targets(message.room, handle.connection_id),
            create_event(
                RoomEvents.USER_TYPING,
                room=message.room,
                connection_id=handle.connection_id,
                username=handle.display_name,
                is_typing=message.is_typing,
            ),
        )

    async def _handle_set_username(self, handle: ClientHandle, message: SetUsernameMessage) -> None:
        self.registry.set_username(handle.connection_id, message.username)
        await self._send(handle, create_event(SystemEvents.USERNAME_SET, username=message.username))

    async def _handle_list_rooms(self, handle: ClientHandle, message: Any) -> None:
        rooms = [
            {"name": name, "members": len(self.registry.members(name))}
            for name in self.registry.rooms()
        ]
        await self._send(
            handle,
            create_event(
                RoomEvents.ROOM_LIST,
                rooms=rooms,
                joined=self.registry.room_names_for(handle.connection_id),
            ),
        )

    async def _handle_ping(self, handle: ClientHandle, message: Any) -> None:
        await self._send(handle, create_event(SystemEvents.PONG))

    # ----------------------------
    # Sending
    # ----------------------------
    async def _send(self, handle: ClientHandle, event: dict[str, Any]) -> bool:
        return await handle.transport.enqueue(event)

    async def _fan_out(self, targets: list[ClientHandle], event: dict[str, Any]) -> int:
        """Queue ``event`` for every target; returns how many accepted it."""
        delivered = 0
        for target in targets:
            if await target.transport.enqueue(event):
                delivered += 1
        return delivered

    async def _cleanup_connection(self, connection_id: str) -> None:
        """Remove a connection from every room and tell the remaining members."""
        self.connections.pop(connection_id, None)
        handle = self.registry.get(connection_id)
        if handle is None:
            return

        left = self.registry.disconnect(connection_id)
        for room in left:
            await self._fan_out(
                self.registry.relay_targets(room, connection_id),
                member_event(RoomEvents.USER_LEFT, room, handle),
            )

        with contextlib.suppress(Exception):
            await handle.transport.close()

        logger.info(
            f"Cleaned up connection {connection_id} | Left rooms: {left} | "
            f"Connections: {len(self.registry)}"
        )

    # ----------------------------
    # Lifecycle
    # ----------------------------
    async def start_server(self) -> None:
        """Start WebSocket server and run until shutdown() is called"""
        if self.running:
            logger.warning("Server is already running")
            return

        self.running = True
        self.started_at = datetime.now()
        try:
            async with serve(
                self.handle_connection,
                self.host,
                self.port,
                ping_interval=self.settings.ping_interval,
                ping_timeout=self.settings.ping_timeout,
                max_size=self.settings.max_message_size,
            ) as server:
                self._server = server
                self.ready.set()
                logger.info(f"roomcast server started at ws://{self.host}:{self.bound_port}")

                heartbeat_task = asyncio.create_task(self._heartbeat_loop())
                try:
                    await self.shutdown_event.wait()
                finally:
                    heartbeat_task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await heartbeat_task

        except Exception as e:
            logger.exception(f"Server error: {e}")
            raise
        finally:
            self.running = False
            self.ready.clear()
            self._server = None
            logger.info("Server stopped")

    async def _heartbeat_loop(self) -> None:
        """Periodically drop dead connections and send heartbeat events"""
        interval = self.settings.heartbeat_interval
        if interval <= 0:
            return

        while self.running:
            try:
                await asyncio.sleep(interval)

                for connection_id, websocket in list(self.connections.items()):
                    if is_websocket_closed(websocket):
                        await self._cleanup_connection(connection_id)

                snapshot = self.registry.snapshot()
                heartbeat = create_event(
                    SystemEvents.HEARTBEAT,
                    connections=snapshot["total_connections"],
                    rooms=snapshot["total_rooms"],
                )
                await self._fan_out(self.registry.clients(), heartbeat)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Heartbeat loop error: {e}")

    async def shutdown(self) -> None:
        """Gracefully shutdown server"""
        logger.info("Shutting down server...")
        self.running = False

        for websocket in list(self.connections.values()):
            await close_websocket_safely(websocket, code=1001, reason="Server shutting down")

        for handle in self.registry.clients():
            with contextlib.suppress(Exception):
                await handle.transport.close()

        self.shutdown_event.set()
        logger.info("Server shutdown complete")

    def get_status(self) -> dict[str, Any]:
        """Get server status"""
        uptime = (datetime.now() - self.started_at).total_seconds() if self.started_at else 0.0
        status = {
            "running": self.running,
            "host": self.host,
            "port": self.bound_port or self.port,
            "server_time": datetime.now().isoformat(),
            "uptime": uptime,
            "outbound_queues": {
                h.connection_id: h.transport.stats() for h in self.registry.clients()
            },
        }
        status.update(self.registry.snapshot())
        return status
