"""Integration tests against a listening server."""

import asyncio
import json

import pytest
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from roomcast.config import Settings
from roomcast.ws.auth import AUTH_FAILED_CLOSE_CODE
from roomcast.ws.server import RoomWebSocketServer
from tests.ws.fixtures.helpers import wait_for_condition


async def _recv_until(ws, event_type: str, timeout: float = 5.0) -> dict:
    """Read events until one of ``event_type`` arrives."""
    while True:
        event = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))
        if event["type"] == event_type:
            return event


def _url(server: RoomWebSocketServer, query: str = "") -> str:
    return f"ws://127.0.0.1:{server.bound_port}/{query}"


@pytest.mark.integration
class TestChatRoundTrip:
    """End-to-end tests over real sockets."""

    @pytest.mark.asyncio
    async def test_room_chat(self, running_server: RoomWebSocketServer):
        async with connect(_url(running_server)) as a, connect(_url(running_server)) as b:
            a_id = (await _recv_until(a, "connected"))["connection_id"]
            await _recv_until(b, "connected")

            await a.send(json.dumps({"type": "join_room", "room": "general", "username": "ann"}))
            await _recv_until(a, "room_joined")
            await b.send(json.dumps({"type": "join_room", "room": "general"}))
            await _recv_until(b, "room_joined")
            assert (await _recv_until(a, "user_joined"))["room"] == "general"

            await a.send(json.dumps({"type": "chat_message", "room": "general", "message": "hi"}))
            received = await _recv_until(b, "new_message")

            assert received["message"] == "hi"
            assert received["username"] == "ann"
            assert received["sender_id"] == a_id

            # Nothing for the sender besides the pong
            await a.send(json.dumps({"type": "ping"}))
            event = json.loads(await asyncio.wait_for(a.recv(), timeout=5.0))
            assert event["type"] == "pong"

        await wait_for_condition(lambda: running_server.registry.rooms() == [])

    @pytest.mark.asyncio
    async def test_disconnect_notifies_room(self, running_server: RoomWebSocketServer):
        async with connect(_url(running_server)) as b:
            await _recv_until(b, "connected")
            await b.send(json.dumps({"type": "join_room", "room": "general"}))
            await _recv_until(b, "room_joined")

            async with connect(_url(running_server)) as a:
                await _recv_until(a, "connected")
                await a.send(json.dumps({"type": "join_room", "room": "general"}))
                await _recv_until(a, "room_joined")
                await _recv_until(b, "user_joined")

            left = await _recv_until(b, "user_left")
            assert left["room"] == "general"
            assert len(running_server.registry.members("general")) == 1

    @pytest.mark.asyncio
    async def test_invalid_frame_gets_error(self, running_server: RoomWebSocketServer):
        async with connect(_url(running_server)) as a:
            await _recv_until(a, "connected")
            await a.send("not json")

            error = await _recv_until(a, "error")
            assert error["code"] == "invalid_json"

            await a.send(json.dumps({"type": "ping"}))
            await _recv_until(a, "pong")


@pytest.mark.integration
class TestTokenAuthentication:
    """Connect-time token enforcement over real sockets."""

    @pytest.fixture
    def settings(self) -> Settings:
        return Settings(host="127.0.0.1", port=0, auth_token="s3cret", heartbeat_interval=0)

    @pytest.mark.asyncio
    async def test_bad_token_closes_with_4001(self, running_server: RoomWebSocketServer):
        async with connect(_url(running_server, "?token=wrong")) as ws:
            with pytest.raises(ConnectionClosed) as exc_info:
                await asyncio.wait_for(ws.recv(), timeout=5.0)

        assert exc_info.value.rcvd.code == AUTH_FAILED_CLOSE_CODE
        assert len(running_server.registry) == 0

    @pytest.mark.asyncio
    async def test_good_token_connects(self, running_server: RoomWebSocketServer):
        async with connect(_url(running_server, "?token=s3cret")) as ws:
            event = await _recv_until(ws, "connected")

        assert event["connection_id"]
