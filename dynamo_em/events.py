"""
Per-instance event emitter for flush lifecycle notifications.

Observers that are not awaiting flush() directly can register listeners here.
Each EntityManager owns one emitter; there is no global emitter.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventType(Enum):
    """Events emitted during a flush cycle."""

    FLUSHED = "flushed"
    ERROR = "error"
    LIMIT_EXCEEDED = "limit_exceeded"


class EventEmitter:
    """Synchronous listener registry.

    Listeners run in registration order. A listener that raises is logged and
    skipped so one faulty observer cannot change the outcome of a flush.

    Example:
        >>> events = EventEmitter()
        >>> events.on(EventType.ERROR, lambda err: print("flush failed:", err))
        >>> events.emit(EventType.ERROR, RuntimeError("boom"))
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[EventType, List[Listener]] = defaultdict(list)

    def on(self, event: EventType, listener: Listener) -> Listener:
        """Register a listener; returns it so it can be used as a decorator."""
        self._listeners[event].append(listener)
        return listener

    def once(self, event: EventType, listener: Listener) -> Listener:
        """Register a listener that is removed after its first call."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return listener(*args)

        self._listeners[event].append(wrapper)
        return wrapper

    def off(self, event: EventType, listener: Listener) -> None:
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass

    def listener_count(self, event: EventType) -> int:
        return len(self._listeners[event])

    def emit(self, event: EventType, *args: Any) -> bool:
        """Call every listener for ``event``; returns whether any was registered."""
        listeners = list(self._listeners[event])
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Event listener failed", extra={"event": event.value})
        return bool(listeners)
