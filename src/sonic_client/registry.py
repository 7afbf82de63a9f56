"""Event Registry - maps server event ids to pending result sinks.

QUERY and SUGGEST are acknowledged with ``PENDING <id>``; the results
arrive later as ``EVENT <type> <id> <tokens>...`` at a point of the
server's choosing. The registry routes each EVENT back to whoever
registered its id.

Two sink shapes are supported:
- asyncio.Future: one-shot deferred result awaited by the asyncio client
- callable: invoked inline by the blocking client's read loop
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

EventCallback = Callable[[list[str]], Any]
EventSink = asyncio.Future[list[str]] | EventCallback


@dataclass
class PendingEvent:
    """Handle for a query/suggest result that has not arrived yet.

    Usage:
        pending = await client.query("messages", "user-1", "hello")
        object_ids = await pending
    """

    event_id: str
    future: asyncio.Future[list[str]]

    def done(self) -> bool:
        return self.future.done()

    def __await__(self) -> Generator[Any, None, list[str]]:
        return self.future.__await__()


class EventRegistry:
    """Pending event waiters keyed by server-issued event id."""

    def __init__(self) -> None:
        self._sinks: dict[str, EventSink] = {}

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._sinks

    def __len__(self) -> int:
        return len(self._sinks)

    @property
    def pending_ids(self) -> list[str]:
        """Event ids still waiting for their EVENT line."""
        return list(self._sinks)

    def register(self, event_id: str, sink: EventSink) -> None:
        """Store a sink under an event id.

        Raises:
            ValueError: If the id is already registered.
        """
        if event_id in self._sinks:
            raise ValueError(f"Event id already registered: {event_id}")
        self._sinks[event_id] = sink

    def deliver(self, event_id: str, payload: list[str]) -> bool:
        """Hand an event payload to its sink and forget the waiter.

        Returns:
            True if a waiter was registered under the id, False if the
            event was unknown (late or duplicate) and dropped.
        """
        sink = self._sinks.pop(event_id, None)
        if sink is None:
            logger.debug(f"Dropping event for unknown id: {event_id}")
            return False

        if isinstance(sink, asyncio.Future):
            if sink.done():
                # Caller stopped waiting; the event is consumed and discarded
                logger.debug(f"Discarding unconsumed event: {event_id}")
            else:
                sink.set_result(payload)
            return True

        try:
            sink(payload)
        except Exception:
            logger.exception(f"Error in event callback for {event_id}")
        return True

    def cancel_all(self) -> None:
        """Drop every waiter, cancelling pending futures."""
        for event_id, sink in self._sinks.items():
            if isinstance(sink, asyncio.Future) and not sink.done():
                logger.debug(f"Cancelling pending event: {event_id}")
                sink.cancel()
        self._sinks.clear()
