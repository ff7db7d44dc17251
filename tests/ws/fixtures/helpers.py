"""Test helper utilities for WebSocket server tests."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Optional

_CLOSED = object()


class FakeWebSocket:
    """In-memory stand-in for a server-side websocket connection.

    Inbound frames are fed with :meth:`feed` and consumed by ``async for``;
    everything the server sends is decoded and kept in :attr:`sent`.
    """

    def __init__(
        self,
        path: str = "/",
        headers: Optional[dict[str, str]] = None,
        fail_sends: int = 0,
        send_gate: Optional[asyncio.Event] = None,
    ):
        self.request = SimpleNamespace(path=path, headers=headers or {})
        self.remote_address = ("127.0.0.1", 50000)
        self.sent: list[dict[str, Any]] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._fail_sends = fail_sends
        self._send_gate = send_gate
        self._inbound: asyncio.Queue = asyncio.Queue()

    def feed(self, message: Any) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""
        if isinstance(message, (dict, list)):
            message = json.dumps(message)
        self._inbound.put_nowait(message)

    def finish(self) -> None:
        """End the inbound stream as a clean client close would."""
        self._inbound.put_nowait(_CLOSED)

    async def send(self, data: str) -> None:
        if self._send_gate is not None:
            # Holds the sender until the test opens the gate
            await self._send_gate.wait()
        if self._fail_sends > 0:
            self._fail_sends -= 1
            raise RuntimeError("send failed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
            self.finish()

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def events(self, event_type: Optional[str] = None) -> list[dict[str, Any]]:
        if event_type is None:
            return list(self.sent)
        return [e for e in self.sent if e.get("type") == event_type]


class ConnectedClient:
    """A FakeWebSocket driven through ``server.handle_connection``."""

    def __init__(self, server, websocket: FakeWebSocket):
        self.server = server
        self.ws = websocket
        self.task = asyncio.create_task(server.handle_connection(websocket))

    @property
    def connection_id(self) -> str:
        return self.ws.events("connected")[0]["connection_id"]

    def events(self, event_type: Optional[str] = None) -> list[dict[str, Any]]:
        return self.ws.events(event_type)

    async def send(self, message: Any) -> None:
        self.ws.feed(message)

    async def sync(self) -> None:
        """Round-trip a ping so every earlier frame has been handled."""
        before = len(self.ws.events("pong"))
        self.ws.feed({"type": "ping"})
        await wait_for_condition(lambda: len(self.ws.events("pong")) > before)

    async def disconnect(self) -> None:
        self.ws.finish()
        await asyncio.wait_for(self.task, timeout=5.0)


async def connect_client(server, **kwargs) -> ConnectedClient:
    """Connect a fake client and wait for its ``connected`` event."""
    client = ConnectedClient(server, FakeWebSocket(**kwargs))
    await wait_for_condition(lambda: client.ws.events("connected"))
    return client


async def wait_for_condition(
    condition_func,
    timeout: float = 5.0,
    interval: float = 0.01,
    error_message: str = "Condition not met within timeout",
):
    """Wait for a condition to become true."""
    loop = asyncio.get_running_loop()
    start_time = loop.time()
    while loop.time() - start_time < timeout:
        result = condition_func()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return True
        await asyncio.sleep(interval)
    raise TimeoutError(error_message)
