"""
Parallel flusher.

Applies every pending write independently and concurrently. There is no
cross-item atomicity: when some writes fail, the others stay applied.

Invariants:
    - All writes are dispatched before any result is awaited
    - flush() returns only after every write has completed
    - A single failure is re-raised as the same exception instance
    - Several failures raise ParallelFlushError listing each failed key
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ParallelFlushError
from ..events import EventEmitter
from ..store.base import DocumentStore, PutOperation, WriteOperation
from ..tracking import TrackedItem, TrackedItems
from .operations import build_operation

logger = logging.getLogger(__name__)


class ParallelFlusher:
    """Flusher issuing one conditional write per tracked item, concurrently.

    Example:
        >>> flusher = ParallelFlusher(store)
        >>> manager = EntityManager(flusher, [users])
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def flush(self, tracked: TrackedItems, events: Optional[EventEmitter] = None) -> None:
        """Write every pending change concurrently.

        Args:
            tracked: Tracked items of the calling manager
            events: Unused; accepted for Flusher compatibility

        Raises:
            ParallelFlushError: If more than one write failed
            Exception: The store error, if exactly one write failed
        """
        pending: List[Tuple[TrackedItem, WriteOperation]] = []
        for item in tracked.values():
            operation = build_operation(item)
            if operation is not None:
                pending.append((item, operation))

        if not pending:
            logger.debug("Nothing to flush")
            return

        results = await asyncio.gather(
            *(self._write(operation) for _, operation in pending),
            return_exceptions=True,
        )

        failures: List[Tuple[str, Dict[str, Any], BaseException]] = []
        for (item, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                failures.append((item.table_name, item.get_key(), result))

        if not failures:
            logger.debug("Parallel flush completed", extra={"writes": len(pending)})
            return

        logger.warning(
            "Parallel flush had failed writes",
            extra={"writes": len(pending), "failed": len(failures)},
        )
        if len(failures) == 1:
            raise failures[0][2]
        raise ParallelFlushError(failures, attempted=len(pending))

    async def _write(self, operation: WriteOperation) -> None:
        if isinstance(operation, PutOperation):
            await self.store.put(operation.table_name, operation.item, operation.condition)
        else:
            await self.store.delete(operation.table_name, operation.key, operation.condition)
