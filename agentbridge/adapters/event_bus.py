"""Async event bus bridging session callbacks to a client connection.

Sessions fire events via callback from their own tasks. The EventBus
queues them in arrival order for the connection's sender loop, so a
slow client never blocks a session's stream pumps for long.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from agentbridge.engine.events import StreamEvent

logger = logging.getLogger(__name__)

# Events that end a session; never dropped on a full queue.
_TERMINAL_TYPES = frozenset({"claude-complete"})


class EventBus:
    """Async queue bridging session event callbacks to one consumer."""

    def __init__(self, maxsize: int = 5000, put_timeout: float = 30.0) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._put_timeout = put_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def emit(self, event: StreamEvent) -> None:
        """Queue an event. Usable directly as a session EventCallback."""
        if self._closed:
            return
        try:
            # Await put() with timeout to add backpressure instead of dropping
            await asyncio.wait_for(self._queue.put(event), timeout=self._put_timeout)
        except asyncio.TimeoutError:
            if event.type in _TERMINAL_TYPES:
                self._force_put(event)
                return
            logger.error(
                "EventBus queue blocked for %.0fs, dropping: %s (queue size: %d)",
                self._put_timeout,
                event.type,
                self._queue.qsize(),
            )

    def _force_put(self, event: StreamEvent) -> None:
        # A client must always learn that its session ended: evict the
        # oldest queued event to make room.
        try:
            self._queue.put_nowait(event)
            return
        except asyncio.QueueFull:
            pass
        evicted = self._queue.get_nowait()
        logger.error(
            "EventBus queue blocked for %.0fs, evicted %s to deliver %s (session %s)",
            self._put_timeout, evicted.type, event.type, event.session_id,
        )
        self._queue.put_nowait(event)

    async def consume(self) -> AsyncIterator[StreamEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            yield event

    def drain(self) -> list[StreamEvent]:
        """Return and remove everything currently queued."""
        events: list[StreamEvent] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True
