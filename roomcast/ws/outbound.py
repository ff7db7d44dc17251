"""Outbound message channels for per-connection single-writer sending.

Every connection gets one channel. All events for that connection go
through its bounded queue and are written by exactly one writer task, so
``websocket.send()`` is never called concurrently and a slow reader can
only ever hold ``maxsize`` events in memory. What happens when the queue
is full is decided by the channel's :class:`SlowConsumerPolicy`.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from roomcast.config import SlowConsumerPolicy
from roomcast.logger import logger
from .utils import close_websocket_safely, is_websocket_closed

# RFC 6455 policy violation
SLOW_CONSUMER_CLOSE_CODE = 1008


class OutboundChannel:
    """Per-connection outbound channel with a single writer task."""

    def __init__(
        self,
        websocket: ServerConnection,
        *,
        maxsize: int = 100,
        policy: SlowConsumerPolicy = SlowConsumerPolicy.DROP_OLDEST,
        send_timeout: float = 5.0,
        name: str | None = None,
    ) -> None:
        self.websocket = websocket
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.policy = SlowConsumerPolicy(policy)
        self.send_timeout = send_timeout
        self.name = name or "outbound"
        self.sent = 0
        self.dropped = 0
        self.overflowed = False
        self._closed = False
        self._writer_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._writer_task is None or self._writer_task.done():
            self._writer_task = asyncio.create_task(self._writer(), name=f"{self.name}-writer")

    async def enqueue(self, event: dict[str, Any]) -> bool:
        """Queue an event for sending.

        Never raises. When the queue is full the slow-consumer policy
        decides between dropping the oldest event, waiting for space, or
        disconnecting the client.

        Returns:
            True if the event was queued
        """
        if self._closed:
            return False

        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            pass

        if self.policy is SlowConsumerPolicy.DROP_OLDEST:
            try:
                self.queue.get_nowait()
                self.queue.task_done()
            except asyncio.QueueEmpty:
                pass
            self.dropped += 1
            logger.debug(f"{self.name}: queue full, dropped oldest event")
            self.queue.put_nowait(event)
            return True

        if self.policy is SlowConsumerPolicy.BLOCK:
            try:
                await asyncio.wait_for(self.queue.put(event), timeout=self.send_timeout)
                return True
            except asyncio.TimeoutError:
                logger.warning(
                    f"{self.name}: no queue space after {self.send_timeout}s, disconnecting"
                )

        self.dropped += 1
        self._overflow()
        return False

    async def close(self) -> None:
        self._closed = True
        if self._writer_task is not None:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Error awaiting writer task close: {e}")
        # Let a pending slow-consumer close finish before the caller tears down
        if self._close_task is not None and not self._close_task.done():
            await self._close_task
        # Drain queue best-effort
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

    def stats(self) -> dict[str, Any]:
        return {
            "queued": self.queue.qsize(),
            "sent": self.sent,
            "dropped": self.dropped,
            "overflowed": self.overflowed,
        }

    def _overflow(self) -> None:
        """Stop accepting events and close the socket as a slow consumer."""
        if self.overflowed:
            return
        self.overflowed = True
        self._closed = True
        logger.warning(f"{self.name}: slow consumer, closing connection")
        self._close_task = asyncio.create_task(
            close_websocket_safely(
                self.websocket, code=SLOW_CONSUMER_CLOSE_CODE, reason="Slow consumer"
            ),
            name=f"{self.name}-close",
        )

    async def _writer(self) -> None:
        """Single writer that sends all events on this connection."""
        try:
            while True:
                event = await self.queue.get()
                try:
                    if is_websocket_closed(self.websocket):
                        logger.debug(f"{self.name}: websocket closed, dropping outbound event")
                        self.dropped += 1
                    else:
                        await self.websocket.send(json.dumps(event))
                        self.sent += 1
                except ConnectionClosed:
                    logger.debug(f"{self.name}: connection closed while sending")
                    self.dropped += 1
                except Exception as e:
                    # Log and continue; the reader side decides when the connection ends
                    logger.error(f"Outbound send failed on {self.name}: {e}")
                    self.dropped += 1
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            # Normal shutdown path
            pass
