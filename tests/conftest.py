"""Pytest configuration and shared fixtures."""

import asyncio
from typing import AsyncGenerator

import pytest

from roomcast.config import Settings, SlowConsumerPolicy
from roomcast.ws.registry import RoomRegistry
from roomcast.ws.server import RoomWebSocketServer


@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated server on a free local port."""
    return Settings(
        host="127.0.0.1",
        port=0,
        auth_token=None,
        outbound_queue_size=100,
        slow_consumer_policy=SlowConsumerPolicy.DROP_OLDEST,
        heartbeat_interval=0,
    )


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def server(settings: Settings, registry: RoomRegistry) -> RoomWebSocketServer:
    """Server instance that is not listening; drive it with fake sockets."""
    return RoomWebSocketServer(settings, registry=registry)


@pytest.fixture
async def running_server(settings: Settings) -> AsyncGenerator[RoomWebSocketServer, None]:
    """Server listening on an ephemeral port."""
    server = RoomWebSocketServer(settings)
    task = asyncio.create_task(server.start_server())
    await asyncio.wait_for(server.ready.wait(), timeout=5.0)
    yield server
    # Cleanup
    await server.shutdown()
    await asyncio.wait_for(task, timeout=5.0)
