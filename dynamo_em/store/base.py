"""
Base protocol and types for the document store boundary.

This module defines the DocumentStore protocol the entity manager writes
through, the write operations it sends, the structured conditions that guard
them, and the store error hierarchy.

Invariants:
    - Conditions are plain data; adapters either render them (DynamoDB
      expressions) or evaluate them (in-memory store)
    - transact_write() applies every operation or none of them
    - Items handed to put() are never mutated by the store

How to change safely:
    - Protocol changes require updating every store implementation
    - New condition types need both a render and an evaluate path
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable
import logging

from ..tables import AttributeMap, Key

logger = logging.getLogger(__name__)

_MISSING = object()


class StoreError(Exception):
    """Base exception for document store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection to the store backend failed."""
    pass


class StoreTimeoutError(StoreError):
    """Store operation timed out."""
    pass


class ConditionalCheckFailedError(StoreError):
    """A write condition did not hold.

    Either a create collided with an existing key, or an update/delete lost
    the optimistic-concurrency race on the version attribute.
    """

    def __init__(self, message: str, table_name: str | None = None, key: Key | None = None) -> None:
        super().__init__(message)
        self.table_name = table_name
        self.key = key


class TransactionCanceledError(StoreError):
    """An atomic transaction was rejected and none of its writes applied.

    Attributes:
        reasons: One cancellation reason code per operation ("None" when the
            operation itself was fine)
    """

    def __init__(self, message: str, reasons: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.reasons = list(reasons)

    @property
    def conditional_check_failed(self) -> bool:
        """Whether any operation was cancelled by a failed condition."""
        return "ConditionalCheckFailed" in self.reasons


@dataclass(frozen=True)
class AttributeNotExists:
    """Holds when the stored item has no value for ``name``.

    Applied to a key attribute it means "no item with this key exists".
    """
    name: str

    def evaluate(self, item: AttributeMap | None) -> bool:
        return item is None or self.name not in item


@dataclass(frozen=True)
class AttributeEquals:
    """Holds when the stored item's ``name`` attribute equals ``value``."""
    name: str
    value: Any

    def evaluate(self, item: AttributeMap | None) -> bool:
        if item is None:
            return False
        return item.get(self.name, _MISSING) == self.value


Clause = Union[AttributeNotExists, AttributeEquals]


@dataclass(frozen=True)
class Condition:
    """Conjunction of clauses guarding a single write.

    Example:
        >>> cond = Condition.all(AttributeNotExists("pk"), AttributeNotExists("sk"))
        >>> cond.evaluate(None)
        True
    """
    clauses: Tuple[Clause, ...] = ()

    @classmethod
    def all(cls, *clauses: Clause) -> Condition:
        return cls(clauses=tuple(clauses))

    def and_(self, other: Optional[Condition]) -> Condition:
        """Combine two conditions; ``None`` is treated as "always true"."""
        if other is None:
            return self
        return Condition(clauses=self.clauses + other.clauses)

    def evaluate(self, item: AttributeMap | None) -> bool:
        return all(clause.evaluate(item) for clause in self.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)


@dataclass
class PutOperation:
    """Write the full item, replacing whatever is stored at its key."""
    table_name: str
    item: AttributeMap
    condition: Optional[Condition] = None


@dataclass
class DeleteOperation:
    """Remove the item stored at ``key``."""
    table_name: str
    key: Key
    condition: Optional[Condition] = None


WriteOperation = Union[PutOperation, DeleteOperation]


@dataclass
class StoreCall:
    """Record of one call made against a store (testing and diagnostics)."""
    method: str
    operations: list[WriteOperation] = field(default_factory=list)


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for key/value document store backends.

    Consistency contract:
        - put() and delete() apply a single item write, honoring the condition
        - transact_write() applies every operation or none
        - A failed condition raises ConditionalCheckFailedError for single
          writes and TransactionCanceledError for transactions

    Example:
        >>> store = InMemoryDocumentStore({"users": KeySchema("id")})
        >>> await store.put("users", {"id": "u1", "name": "Ada"})
        >>> await store.get("users", {"id": "u1"})
        {'id': 'u1', 'name': 'Ada'}
    """

    @abstractmethod
    async def put(
        self,
        table_name: str,
        item: AttributeMap,
        condition: Optional[Condition] = None,
    ) -> None:
        """Write a full item.

        Raises:
            ConditionalCheckFailedError: If the condition does not hold
            StoreError: For other write failures
        """
        ...

    @abstractmethod
    async def delete(
        self,
        table_name: str,
        key: Key,
        condition: Optional[Condition] = None,
    ) -> None:
        """Delete the item stored at ``key``.

        Raises:
            ConditionalCheckFailedError: If the condition does not hold
            StoreError: For other write failures
        """
        ...

    @abstractmethod
    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        """Apply all operations atomically.

        Raises:
            TransactionCanceledError: If any condition fails (nothing applied)
            StoreError: For other failures
        """
        ...

    @abstractmethod
    async def get(self, table_name: str, key: Key) -> AttributeMap | None:
        """Read the item stored at ``key``, or None."""
        ...
