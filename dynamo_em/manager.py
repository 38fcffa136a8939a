"""
Entity manager: the unit of work over a document store.

The EntityManager tracks in-memory entities as new, existing or deleted and,
on flush(), hands the tracked set to a Flusher that performs the writes. It:
- Keeps at most one tracked item per entity and per (table, key)
- Runs at most one flush at a time; concurrent callers share it
- Advances tracked items only after a successful flush
- Reports the outcome to the caller and on its EventEmitter

Invariants:
    - Entity identity is reference identity (id()), not equality
    - On flush failure the tracked set is exactly as it was before
    - The tracked set cannot be changed while a flush is in flight
    - Errors reach every awaiting caller as the same instance

How to change safely:
    - Lifecycle changes belong in _advance_lifecycle() only
    - Keep flushers free of tracked-set mutations

Example:
    >>> manager = EntityManager(TransactionalFlusher(store), [users])
    >>> manager.track_new("users", user)
    >>> await manager.flush()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Iterable, List, Optional, Union

from .errors import FlushInProgressError, KeyInUseError
from .events import EventEmitter, EventType
from .flushers.base import Flusher
from .tables import Key, TableConfig, TableRegistry
from .tracking import CreatedItem, DeletedItem, TrackedItem, TrackedItems, UpdatedItem

logger = logging.getLogger(__name__)


def _retrieve_exception(task: asyncio.Task[None]) -> None:
    # Callers may all have been cancelled; the outcome is still reported via events
    if not task.cancelled():
        task.exception()


class FlushState(Enum):
    """Whether a flush is currently running."""

    IDLE = "idle"
    FLUSHING = "flushing"


class EntityManager:
    """Tracks entity changes and flushes them through a Flusher.

    Attributes:
        flusher: Strategy performing the writes
        events: Emitter for FLUSHED / ERROR / LIMIT_EXCEEDED

    Concurrency:
        Designed for a single event loop. A second flush() while one is in
        flight awaits the running flush instead of starting another one.
        Cancelling a caller does not cancel the flush itself.
    """

    def __init__(
        self,
        flusher: Flusher,
        table_configs: Union[TableRegistry, Iterable[TableConfig[Any]]],
        events: Optional[EventEmitter] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            flusher: Flush strategy
            table_configs: Table configurations or a prepared registry
            events: Emitter to report on (a new one is created if omitted)

        Raises:
            DuplicateTableError: If two configurations share a table name
        """
        self.flusher = flusher
        self.events = events or EventEmitter()
        if isinstance(table_configs, TableRegistry):
            self._tables = table_configs
        else:
            self._tables = TableRegistry(table_configs)
        self._tables.freeze()
        self._tracked: TrackedItems = {}
        self._flush_task: Optional[asyncio.Task[None]] = None

    @property
    def tables(self) -> TableRegistry:
        return self._tables

    @property
    def state(self) -> FlushState:
        return FlushState.FLUSHING if self._flush_task is not None else FlushState.IDLE

    @property
    def is_flushing(self) -> bool:
        return self.state == FlushState.FLUSHING

    def __len__(self) -> int:
        return len(self._tracked)

    def is_tracked(self, entity: Any) -> bool:
        return id(entity) in self._tracked

    def tracked_items(self) -> List[TrackedItem]:
        """Snapshot of the tracked items in insertion order."""
        return list(self._tracked.values())

    async def flush(self) -> None:
        """Write all tracked changes.

        Raises:
            Exception: Whatever failed the flush cycle (store errors,
                TransactionItemsLimitReached, ParallelFlushError), unchanged
        """
        if self._flush_task is None:
            self._flush_task = asyncio.ensure_future(self._run_flush())
            self._flush_task.add_done_callback(_retrieve_exception)
        else:
            logger.debug("Flush already in progress, joining it")
        await asyncio.shield(self._flush_task)

    def track(self, table_name: str, entity: Any, version: Optional[int] = None) -> None:
        """Track an entity that already exists in the store.

        The entity is snapshotted now; the next flush writes it back only if
        it changed.

        Args:
            table_name: Table the entity belongs to
            entity: The entity (None is ignored)
            version: Version read from the store, for the optimistic lock

        Raises:
            KeyInUseError: If another tracked entity has the same key
            UnknownTableError: If the table is not configured
            FlushInProgressError: If a flush is running
        """
        if entity is None:
            return
        self._guard_not_flushing("track")
        if self.is_tracked(entity):
            return
        config = self._tables.get(table_name)
        self._add_tracked_item(UpdatedItem(entity, config, version))

    def track_new(self, table_name: str, entity: Any) -> None:
        """Track an entity to be created on the next flush.

        Raises:
            KeyInUseError: If another tracked entity has the same key
            UnknownTableError: If the table is not configured
            FlushInProgressError: If a flush is running
        """
        if entity is None:
            return
        self._guard_not_flushing("track_new")
        if self.is_tracked(entity):
            return
        config = self._tables.get(table_name)
        self._add_tracked_item(CreatedItem(entity, config))

    def delete(self, table_name: str, entity: Any, version: Optional[int] = None) -> None:
        """Mark an entity for deletion on the next flush.

        An entity tracked as new is simply forgotten, since it was never
        written. The version defaults to the one already tracked.

        Raises:
            KeyInUseError: If the entity is untracked and another tracked
                entity has the same key
            UnknownTableError: If the table is not configured
            FlushInProgressError: If a flush is running
        """
        if entity is None:
            return
        self._guard_not_flushing("delete")
        config = self._tables.get(table_name)
        existing = self._tracked.get(id(entity))

        if isinstance(existing, CreatedItem):
            del self._tracked[id(entity)]
            return

        if existing is None:
            key = config.key_of(entity)
            if self.key_is_tracked(table_name, key):
                raise KeyInUseError(table_name, key)
        elif version is None:
            version = existing.version

        self._tracked[id(entity)] = DeletedItem(entity, config, version)

    def clear(self) -> None:
        """Forget every tracked entity without writing anything."""
        self._guard_not_flushing("clear")
        self._tracked.clear()

    def key_is_tracked(self, table_name: str, key: Key) -> bool:
        """Whether any tracked item of ``table_name`` resolves to ``key``."""
        key_schema = self._tables.get(table_name).key_schema
        return any(
            item.table_name == table_name and key_schema.same_key(item.get_key(), key)
            for item in self._tracked.values()
        )

    async def _run_flush(self) -> None:
        try:
            try:
                for item in self._tracked.values():
                    item.written_state = None
                await self.flusher.flush(self._tracked, self.events)
                self._advance_lifecycle()
            finally:
                self._flush_task = None
        except Exception as err:
            err.add_note("occurred during flush")
            logger.error(
                "Flush failed",
                extra={"error": repr(err), "tracked": len(self._tracked)},
            )
            self.events.emit(EventType.ERROR, err)
            raise

        logger.debug("Flush completed", extra={"tracked": len(self._tracked)})
        self.events.emit(EventType.FLUSHED)

    def _advance_lifecycle(self) -> None:
        # Snapshots come from what was written; unwritten items keep theirs
        for entity_id, item in list(self._tracked.items()):
            if isinstance(item, CreatedItem):
                self._tracked[entity_id] = item.to_updated()
            elif isinstance(item, UpdatedItem):
                if item.written_state is not None:
                    item.set_state(item.written_state)
                    item.written_state = None
            elif isinstance(item, DeletedItem):
                del self._tracked[entity_id]

    def _add_tracked_item(self, item: TrackedItem) -> None:
        key = item.get_key()
        if self.key_is_tracked(item.table_name, key):
            raise KeyInUseError(item.table_name, key)
        self._tracked[id(item.entity)] = item

    def _guard_not_flushing(self, operation: str) -> None:
        if self._flush_task is not None:
            raise FlushInProgressError(operation)
