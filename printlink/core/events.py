"""Single notification channel between the core and the host layer."""

from __future__ import annotations

import logging
import queue
from collections.abc import Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class EventChannel:
    """Ordered event queue fed by the core and drained by the host.

    ``emit`` never blocks. Events are consumed either by pulling them with
    ``get``/``drain`` or by registering handlers and calling ``publish`` on
    the thread that should run them.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._handlers: list[EventHandler] = []

    def emit(self, event: Any) -> None:
        LOGGER.debug("Event: %s", event)
        self._queue.put(event)

    def get(self, timeout: float | None = None) -> Any | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Any]:
        events: list[Any] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self) -> int:
        """Dispatch every queued event to the handlers on the calling thread."""
        events = self.drain()
        handlers = tuple(self._handlers)
        for event in events:
            for handler in handlers:
                handler(event)
        return len(events)
