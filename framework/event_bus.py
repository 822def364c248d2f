"""
Async event bus: the internal channel between the repair state machine
and whatever renders its progress.

The producer publishes structured events via emit(); each subscriber gets
its own asyncio.Queue. close() pushes a None sentinel so consumers know the
run is over.

Design decisions:
  - Each subscriber gets its own asyncio.Queue to decouple producers and consumers
  - Subscribers are removed automatically when they leave their context,
    and the producer keeps running without them
  - The bus is not a singleton; callers construct one per repair session
    to avoid state leaking between sessions
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 1024  # prevents unbounded memory growth on slow consumers


class EventBus:
    """
    Lightweight async publish-subscribe bus.

    Usage:
        bus = EventBus()

        async with bus.subscribe() as queue:
            ...  # start the producer, which calls `await bus.emit(event)`
            while (event := await queue.get()) is not None:
                handle(event)
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue] = []
        self._lock = asyncio.Lock()
        self._closed = False

    async def emit(self, event: dict[str, Any]) -> None:
        """Publish an event to all active subscribers."""
        if self._closed:
            return
        async with self._lock:
            for queue in self._subscribers:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning("EventBus: subscriber queue full, dropping event")

    @asynccontextmanager
    async def subscribe(self) -> AsyncGenerator[asyncio.Queue, None]:
        """
        Context manager that yields a Queue of events.

        Automatically registers and deregisters the subscriber.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        async with self._lock:
            self._subscribers.append(queue)
        try:
            yield queue
        finally:
            async with self._lock:
                try:
                    self._subscribers.remove(queue)
                except ValueError:
                    pass

    async def close(self) -> None:
        """Signal all subscribers that no more events will arrive."""
        self._closed = True
        async with self._lock:
            for queue in self._subscribers:
                try:
                    queue.put_nowait(None)  # sentinel
                except asyncio.QueueFull:
                    # Make room: a consumer waiting on the sentinel must not hang
                    queue.get_nowait()
                    queue.put_nowait(None)
                    logger.warning("EventBus: subscriber queue full, oldest event dropped")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
