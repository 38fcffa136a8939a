"""
In-memory document store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests of the entity manager and flushers
- Local development without DynamoDB

Invariants:
    - All data is lost on process exit
    - Conditions are evaluated exactly as the DynamoDB adapter renders them
    - transact_write() checks every condition before applying anything
    - Stored items are deep copies; callers never share state with the store

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the DocumentStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..tables import AttributeMap, Key, KeySchema
from .base import (
    Condition,
    ConditionalCheckFailedError,
    DeleteOperation,
    PutOperation,
    StoreCall,
    StoreError,
    TransactionCanceledError,
    WriteOperation,
)

logger = logging.getLogger(__name__)

# DynamoDB TransactWriteItems ceiling
DEFAULT_MAX_TRANSACTION_ITEMS = 100

StoredKey = Tuple[Any, ...]


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Attributes:
        key_schemas: Key layout per table
        calls: Every write call received, in order (testing helper)

    Step mode:
        ``pause()`` holds every subsequent call before it touches the data
        until ``resume()`` is called. Useful to observe a flush in flight.

    Example:
        >>> store = InMemoryDocumentStore({"users": KeySchema("id")})
        >>> await store.put("users", {"id": "u1", "name": "Ada"})
        >>> store.get_item("users", {"id": "u1"})
        {'id': 'u1', 'name': 'Ada'}
    """

    def __init__(
        self,
        key_schemas: Dict[str, KeySchema],
        max_transaction_items: int = DEFAULT_MAX_TRANSACTION_ITEMS,
    ) -> None:
        """Initialize the store.

        Args:
            key_schemas: Key layout for every table the store accepts
            max_transaction_items: Largest transaction the store accepts
        """
        self.key_schemas = dict(key_schemas)
        self.max_transaction_items = max_transaction_items
        self.calls: List[StoreCall] = []
        self._tables: Dict[str, Dict[StoredKey, AttributeMap]] = defaultdict(dict)
        self._lock = asyncio.Lock()
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._fail_error: Optional[BaseException] = None
        self._fail_keys: Dict[Tuple[str, StoredKey], BaseException] = {}

    # DocumentStore protocol

    async def put(
        self,
        table_name: str,
        item: AttributeMap,
        condition: Optional[Condition] = None,
    ) -> None:
        operation = PutOperation(table_name, copy.deepcopy(item), condition)
        self.calls.append(StoreCall("put", [operation]))
        await self._await_resume()
        async with self._lock:
            self._guard_should_fail([operation])
            self._check_single(operation)
            self._apply(operation)
        logger.debug("Item put", extra={"table": table_name})

    async def delete(
        self,
        table_name: str,
        key: Key,
        condition: Optional[Condition] = None,
    ) -> None:
        operation = DeleteOperation(table_name, dict(key), condition)
        self.calls.append(StoreCall("delete", [operation]))
        await self._await_resume()
        async with self._lock:
            self._guard_should_fail([operation])
            self._check_single(operation)
            self._apply(operation)
        logger.debug("Item deleted", extra={"table": table_name})

    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        operations = [copy.deepcopy(op) for op in operations]
        self.calls.append(StoreCall("transact_write", operations))
        await self._await_resume()
        async with self._lock:
            self._guard_should_fail(operations)
            if len(operations) > self.max_transaction_items:
                raise StoreError(
                    f"Transaction has {len(operations)} items, "
                    f"maximum is {self.max_transaction_items}"
                )
            seen = set()
            for op in operations:
                target = (op.table_name, self._stored_key(op.table_name, self._key_of(op)))
                if target in seen:
                    raise StoreError(
                        "Transaction cannot include multiple operations on one item"
                    )
                seen.add(target)

            reasons = [
                "None" if self._condition_holds(op) else "ConditionalCheckFailed"
                for op in operations
            ]
            if any(reason != "None" for reason in reasons):
                raise TransactionCanceledError(
                    f"Transaction cancelled, reasons: [{', '.join(reasons)}]",
                    reasons=reasons,
                )
            for op in operations:
                self._apply(op)
        logger.debug("Transaction applied", extra={"operations": len(operations)})

    async def get(self, table_name: str, key: Key) -> AttributeMap | None:
        await self._await_resume()
        return self.get_item(table_name, key)

    # Internals

    def _schema(self, table_name: str) -> KeySchema:
        try:
            return self.key_schemas[table_name]
        except KeyError:
            raise StoreError(f"Requested resource not found: table '{table_name}'") from None

    def _stored_key(self, table_name: str, key: Key) -> StoredKey:
        schema = self._schema(table_name)
        missing = [name for name in schema.attribute_names if key.get(name) is None]
        if missing:
            raise StoreError(
                f"Missing key attributes {missing} for table '{table_name}'"
            )
        return tuple(key[name] for name in schema.attribute_names)

    def _key_of(self, operation: WriteOperation) -> Key:
        if isinstance(operation, PutOperation):
            return self._schema(operation.table_name).extract(operation.item)
        return operation.key

    def _condition_holds(self, operation: WriteOperation) -> bool:
        if not operation.condition:
            return True
        stored_key = self._stored_key(operation.table_name, self._key_of(operation))
        current = self._tables[operation.table_name].get(stored_key)
        return operation.condition.evaluate(current)

    def _check_single(self, operation: WriteOperation) -> None:
        if not self._condition_holds(operation):
            raise ConditionalCheckFailedError(
                "The conditional request failed",
                table_name=operation.table_name,
                key=self._key_of(operation),
            )

    def _apply(self, operation: WriteOperation) -> None:
        stored_key = self._stored_key(operation.table_name, self._key_of(operation))
        table = self._tables[operation.table_name]
        if isinstance(operation, PutOperation):
            table[stored_key] = copy.deepcopy(operation.item)
        else:
            table.pop(stored_key, None)

    def _guard_should_fail(self, operations: Sequence[WriteOperation]) -> None:
        if self._fail_error is not None:
            raise self._fail_error
        for op in operations:
            target = (op.table_name, self._stored_key(op.table_name, self._key_of(op)))
            if target in self._fail_keys:
                raise self._fail_keys[target]

    async def _await_resume(self) -> None:
        await self._resumed.wait()

    # Testing helpers

    def fail_on_call(self, error: Optional[BaseException] = None) -> None:
        """Make every following call raise ``error`` (or a generic StoreError)."""
        self._fail_error = error if error is not None else StoreError("Repository error")

    def fail_on_key(self, table_name: str, key: Key, error: BaseException) -> None:
        """Make every following write touching ``key`` raise ``error``."""
        self._fail_keys[(table_name, self._stored_key(table_name, key))] = error

    def stop_failing(self) -> None:
        self._fail_error = None
        self._fail_keys.clear()

    def pause(self) -> None:
        """Hold incoming calls until resume()."""
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    def set_item(self, table_name: str, item: AttributeMap) -> None:
        """Seed an item without going through the call log."""
        stored_key = self._stored_key(table_name, self._schema(table_name).extract(item))
        self._tables[table_name][stored_key] = copy.deepcopy(item)

    def get_item(self, table_name: str, key: Key) -> AttributeMap | None:
        """Read an item synchronously (returns a copy)."""
        item = self._tables[table_name].get(self._stored_key(table_name, key))
        return copy.deepcopy(item) if item is not None else None

    def item_count(self, table_name: str) -> int:
        return len(self._tables.get(table_name, {}))

    def all_items(self, table_name: str) -> List[AttributeMap]:
        return [copy.deepcopy(item) for item in self._tables.get(table_name, {}).values()]

    @property
    def write_count(self) -> int:
        """Number of write operations received (transaction items counted individually)."""
        return sum(len(call.operations) for call in self.calls)

    def clear(self) -> None:
        self._tables.clear()
        self.calls.clear()
