"""
Flusher protocol.

A flusher turns the tracked set of one EntityManager into store writes for a
single flush cycle. It never changes the tracked set; advancing item state
after a successful flush is the manager's job.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from ..events import EventEmitter
from ..tracking import TrackedItems


@runtime_checkable
class Flusher(Protocol):
    """Strategy that performs all pending writes of one flush cycle."""

    @abstractmethod
    async def flush(self, tracked: TrackedItems, events: Optional[EventEmitter] = None) -> None:
        """Write every pending change.

        Args:
            tracked: Tracked items, in insertion order
            events: Emitter of the calling manager, for advisory events

        Raises:
            Exception: Whatever made the cycle fail; the manager forwards it
        """
        ...
