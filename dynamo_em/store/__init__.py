"""
Document store abstraction for the entity manager.

This module provides the store boundary the flushers write through:
- DynamoDB (production, via aiobotocore)
- In-memory (for testing)

Invariants:
    - Single writes honor their condition or raise ConditionalCheckFailedError
    - transact_write() is all-or-nothing
    - Store errors are raised to the flusher unchanged

How to change safely:
    - New backends must implement the DocumentStore protocol
    - Mirror condition semantics exactly; the flushers rely on them
"""

from .base import (
    AttributeEquals,
    AttributeNotExists,
    Condition,
    ConditionalCheckFailedError,
    DeleteOperation,
    DocumentStore,
    PutOperation,
    StoreCall,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactionCanceledError,
    WriteOperation,
)
from .dynamodb import DynamoDbDocumentStore
from .memory import InMemoryDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "PutOperation",
    "DeleteOperation",
    "WriteOperation",
    "StoreCall",
    # Conditions
    "Condition",
    "AttributeNotExists",
    "AttributeEquals",
    # Errors
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "ConditionalCheckFailedError",
    "TransactionCanceledError",
    # Implementations
    "DynamoDbDocumentStore",
    "InMemoryDocumentStore",
]
