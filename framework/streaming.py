"""
Streaming adapter: carries structured progress events from the repair
state machine to the transport and renders them as text.

Provides:
  - stream_via_bus(): runs an event source as a background task publishing
    onto an EventBus and yields events to the caller. If the caller stops
    reading, the background run still completes on its own.
  - format_event(): one human-readable text block per event
  - render_text(): async generator of text lines for plain-text transports

This layer is stateless apart from the set of running background tasks.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator, AsyncIterator

from agent.events import SUCCESS, TEST_RUN_RESULT, error_event
from framework.event_bus import EventBus

logger = logging.getLogger(__name__)

# Strong references so running publishers are not garbage collected
_background_tasks: set[asyncio.Task] = set()


def format_event(event: dict[str, Any]) -> str:
    """
    Convert a single event dict to a human-readable progress entry.

    The message text is kept verbatim so consumers matching on its phrases
    keep working; success additionally carries the final code and tests.
    """
    event_type = event.get("type", "unknown")
    message = event.get("message", "")
    payload = event.get("payload", {})

    if event_type == SUCCESS:
        tests = "\n".join(payload.get("tests", []))
        return f"{message}\n{payload.get('code', '')}\n\nTests:\n{tests}"

    if event_type == TEST_RUN_RESULT and not payload.get("passed", False):
        return f"{message}\n{payload.get('summary', '')}".rstrip()

    return message


async def _publish(source: AsyncIterator[dict[str, Any]], bus: EventBus) -> None:
    try:
        async for event in source:
            await bus.emit(event)
    except Exception as exc:
        logger.error("Repair run failed: %s", exc, exc_info=True)
        await bus.emit(error_event(str(exc)).to_dict())
    finally:
        await bus.close()


async def stream_via_bus(
    source: AsyncIterator[dict[str, Any]],
) -> AsyncGenerator[dict[str, Any], None]:
    """
    Run source in a background task and yield its events through an EventBus.

    Errors raised by source end the stream with an error event instead of
    propagating to the consumer.
    """
    bus = EventBus()
    async with bus.subscribe() as queue:
        task = asyncio.create_task(_publish(source, bus))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

        while True:
            event = await queue.get()
            if event is None:
                break
            yield event


async def render_text(
    events: AsyncIterator[dict[str, Any]],
) -> AsyncGenerator[str, None]:
    """Render each event as a newline-terminated text block."""
    async for event in events:
        yield format_event(event) + "\n"
