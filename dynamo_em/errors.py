"""
Error types for the entity manager.

This module defines the exceptions raised by the change-tracking core:
- EntityManagerError: Base exception
- KeyInUseError: Two tracked entities share a key in the same table
- TransactionItemsLimitReached: Atomic batch larger than the store allows
- ParallelFlushError: Several independent writes failed in one flush
- FlushInProgressError: Tracked set mutated while a flush is running
- UnknownTableError / DuplicateTableError / RegistryFrozenError: Table registry misuse

Store-reported failures (ConditionalCheckFailedError, TransactionCanceledError,
transport errors) live in dynamo_em.store.base and are forwarded unchanged.

Invariants:
    - All errors raised by the core inherit from EntityManagerError
    - Errors include context for debugging in ``details``
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple


class EntityManagerError(Exception):
    """Base exception for all entity manager errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ENTITY_MANAGER_ERROR"
        self.details = details or {}


class KeyInUseError(EntityManagerError):
    """Another tracked entity already uses this key in the same table.

    This is a programming error: the caller loaded or created two objects for
    the same stored item.
    """

    def __init__(self, table_name: str, key: Dict[str, Any]) -> None:
        super().__init__(
            f"Key {key!r} is already in use in table '{table_name}'",
            code="KEY_IN_USE",
            details={"table": table_name, "key": key},
        )
        self.table_name = table_name
        self.key = key


class TransactionItemsLimitReached(EntityManagerError):
    """A flush needs more writes than one atomic transaction accepts.

    Raised before any write is issued, so the store is left untouched.
    """

    def __init__(self, items_count: int, limit: int) -> None:
        super().__init__(
            f"Transactions accept a maximum of {limit} items, {items_count} provided",
            code="TRANSACTION_ITEMS_LIMIT_REACHED",
            details={"items_count": items_count, "limit": limit},
        )
        self.items_count = items_count
        self.limit = limit


class ParallelFlushError(EntityManagerError):
    """Several independent writes of a parallel flush failed.

    Writes that succeeded stay applied. ``failures`` lists every failed write
    as ``(table_name, key, exception)``.
    """

    def __init__(self, failures: List[Tuple[str, Dict[str, Any], BaseException]], attempted: int) -> None:
        keys = ", ".join(f"{table}:{key!r}" for table, key, _ in failures)
        super().__init__(
            f"{len(failures)} of {attempted} writes failed: {keys}",
            code="PARALLEL_FLUSH_FAILED",
            details={
                "attempted": attempted,
                "failed_keys": [{"table": table, "key": key} for table, key, _ in failures],
            },
        )
        self.failures = failures
        self.attempted = attempted

    @property
    def errors(self) -> List[BaseException]:
        return [err for _, _, err in self.failures]


class FlushInProgressError(EntityManagerError):
    """The tracked set cannot change while a flush is in flight."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} while a flush is in progress",
            code="FLUSH_IN_PROGRESS",
            details={"operation": operation},
        )
        self.operation = operation


class UnknownTableError(EntityManagerError):
    """No table configuration registered under this name."""

    def __init__(self, table_name: str) -> None:
        super().__init__(
            f"Unknown table '{table_name}'",
            code="UNKNOWN_TABLE",
            details={"table": table_name},
        )
        self.table_name = table_name


class DuplicateTableError(EntityManagerError):
    """A table configuration with this name is already registered."""

    def __init__(self, table_name: str) -> None:
        super().__init__(
            f"Table '{table_name}' is already registered",
            code="DUPLICATE_TABLE",
            details={"table": table_name},
        )
        self.table_name = table_name


class RegistryFrozenError(EntityManagerError):
    """Raised when registering a table after the registry was frozen."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REGISTRY_FROZEN")
