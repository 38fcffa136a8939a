"""
dynamo-em - Unit of work for entities stored in DynamoDB.

This package tracks in-memory entities and reconciles the store with them:
- Entities are registered as new, existing or deleted on an EntityManager
- Existing entities are dirty-checked against a snapshot
- Writes are guarded by key-existence and optimistic version conditions
- A Flusher applies the writes in parallel or in bounded atomic transactions

Architecture:
    ┌─────────────┐  track / delete  ┌───────────────┐  flush()  ┌──────────────┐
    │ Client code │─────────────────▶│ EntityManager │──────────▶│   Flusher    │
    └─────────────┘                  └───────────────┘           └──────┬───────┘
                                                                        │
                                                     put / delete / transact_write
                                                                        ▼
                                                              ┌──────────────────┐
                                                              │  DocumentStore   │
                                                              │ (DynamoDB / mem) │
                                                              └──────────────────┘

Invariants:
    - At most one tracked item per entity and per (table, key)
    - Tracked state only advances after a successful flush
    - Every update writes the full marshaled entity

Example:
    >>> users = TableConfig("users", KeySchema("id"), version_key="v")
    >>> manager = EntityManager(TransactionalFlusher(store), [users])
    >>> manager.track_new("users", {"id": "u1", "name": "Ada"})
    >>> await manager.flush()
"""

from ._version import __version__
from .config import (
    DynamoDbConfig,
    EntityManagerConfig,
    FallbackStrategy,
    FlushConfig,
    FlushStrategy,
    LimitPolicy,
    ObservabilityConfig,
)
from .errors import (
    DuplicateTableError,
    EntityManagerError,
    FlushInProgressError,
    KeyInUseError,
    ParallelFlushError,
    RegistryFrozenError,
    TransactionItemsLimitReached,
    UnknownTableError,
)
from .events import EventEmitter, EventType
from .factory import create_entity_manager, create_flusher, create_store, setup_logging
from .flushers import Flusher, ParallelFlusher, TransactionalFlusher
from .manager import EntityManager, FlushState
from .store import (
    ConditionalCheckFailedError,
    DocumentStore,
    DynamoDbDocumentStore,
    InMemoryDocumentStore,
    StoreError,
    TransactionCanceledError,
)
from .tables import KeySchema, TableConfig, TableRegistry, default_marshal
from .tracking import CreatedItem, DeletedItem, TrackedItem, UpdatedItem

__all__ = [
    "__version__",
    # Core
    "EntityManager",
    "FlushState",
    "EventEmitter",
    "EventType",
    # Tables
    "KeySchema",
    "TableConfig",
    "TableRegistry",
    "default_marshal",
    # Tracked items
    "TrackedItem",
    "CreatedItem",
    "UpdatedItem",
    "DeletedItem",
    # Flushers
    "Flusher",
    "ParallelFlusher",
    "TransactionalFlusher",
    # Stores
    "DocumentStore",
    "DynamoDbDocumentStore",
    "InMemoryDocumentStore",
    # Configuration
    "EntityManagerConfig",
    "DynamoDbConfig",
    "FlushConfig",
    "FlushStrategy",
    "LimitPolicy",
    "FallbackStrategy",
    "ObservabilityConfig",
    "create_entity_manager",
    "create_flusher",
    "create_store",
    "setup_logging",
    # Errors
    "EntityManagerError",
    "KeyInUseError",
    "TransactionItemsLimitReached",
    "ParallelFlushError",
    "FlushInProgressError",
    "UnknownTableError",
    "DuplicateTableError",
    "RegistryFrozenError",
    "StoreError",
    "ConditionalCheckFailedError",
    "TransactionCanceledError",
]
