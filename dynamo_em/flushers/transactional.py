"""
Transactional flusher.

Applies all pending writes with the store's atomic transaction primitive.
The primitive accepts a bounded number of items per call, so a flush that
needs more writes than ``max_items`` is handled by, in order of precedence:

1. delegating the whole tracked set to a fallback flusher, if configured
2. splitting into sequential chunks, if the limit policy is CHUNK
3. failing with TransactionItemsLimitReached before any write (default)

Invariants:
    - Operations keep the insertion order of the tracked set
    - Chunk N+1 is never sent before chunk N has completed
    - Atomicity holds within a chunk only; applied chunks are not rolled back
    - A failed chunk aborts the remaining ones
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..config import DEFAULT_TRANSACTION_MAX_ITEMS, LimitPolicy
from ..errors import TransactionItemsLimitReached
from ..events import EventEmitter, EventType
from ..store.base import DocumentStore, WriteOperation
from ..tracking import TrackedItems
from .base import Flusher
from .operations import build_operation

logger = logging.getLogger(__name__)


class TransactionalFlusher:
    """Flusher writing tracked changes in bounded atomic transactions.

    Attributes:
        store: Store to write through
        max_items: Largest number of operations in one transaction
        limit_policy: What to do above max_items when there is no fallback
        fallback: Flusher handling the full tracked set above max_items

    Example:
        >>> flusher = TransactionalFlusher(
        ...     store, max_items=10, fallback=ParallelFlusher(store)
        ... )
    """

    def __init__(
        self,
        store: DocumentStore,
        max_items: int = DEFAULT_TRANSACTION_MAX_ITEMS,
        limit_policy: LimitPolicy = LimitPolicy.FAIL,
        fallback: Optional[Flusher] = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.store = store
        self.max_items = max_items
        self.limit_policy = limit_policy
        self.fallback = fallback

    async def flush(self, tracked: TrackedItems, events: Optional[EventEmitter] = None) -> None:
        """Write every pending change atomically.

        Args:
            tracked: Tracked items of the calling manager
            events: Emitter notified with LIMIT_EXCEEDED when the batch is
                delegated or chunked

        Raises:
            TransactionItemsLimitReached: Too many writes, no fallback, FAIL policy
            TransactionCanceledError: A condition failed inside a chunk
            StoreError: Other store failures
        """
        operations = self._build_operations(tracked)

        if len(operations) > self.max_items:
            if self.fallback is not None:
                self._notify_limit(events, len(operations), "fallback")
                await self.fallback.flush(tracked, events)
                return
            if self.limit_policy != LimitPolicy.CHUNK:
                raise TransactionItemsLimitReached(len(operations), self.max_items)
            self._notify_limit(events, len(operations), "chunk")

        for start in range(0, len(operations), self.max_items):
            await self._process_chunk(operations[start:start + self.max_items])

        logger.debug("Transactional flush completed", extra={"writes": len(operations)})

    def _build_operations(self, tracked: TrackedItems) -> List[WriteOperation]:
        operations: List[WriteOperation] = []
        for item in tracked.values():
            operation = build_operation(item)
            if operation is not None:
                operations.append(operation)
        return operations

    async def _process_chunk(self, chunk: List[WriteOperation]) -> None:
        try:
            await self.store.transact_write(chunk)
        except Exception:
            logger.error("Transaction chunk failed", extra={"operations": len(chunk)})
            raise

    def _notify_limit(self, events: Optional[EventEmitter], count: int, action: str) -> None:
        logger.warning(
            "Transaction items limit exceeded",
            extra={"operations": count, "limit": self.max_items, "action": action},
        )
        if events is not None:
            events.emit(EventType.LIMIT_EXCEEDED, count, self.max_items)
