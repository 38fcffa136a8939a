"""
Wiring helpers: logging setup and construction of stores, flushers and
entity managers from configuration.

Usage:
    >>> config = EntityManagerConfig.from_env()
    >>> setup_logging(config)
    >>> async with create_store(config) as store:
    ...     manager = create_entity_manager(config, store, [users, orders])
    ...     manager.track_new("users", user)
    ...     await manager.flush()
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import json_log_formatter

from .config import EntityManagerConfig, FallbackStrategy, FlushStrategy
from .events import EventEmitter
from .flushers import Flusher, ParallelFlusher, TransactionalFlusher
from .manager import EntityManager
from .store import DocumentStore, DynamoDbDocumentStore
from .tables import TableConfig

logger = logging.getLogger(__name__)


def setup_logging(config: EntityManagerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Entity manager configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def create_store(config: EntityManagerConfig) -> DynamoDbDocumentStore:
    """DynamoDB store for the configured region/endpoint (not yet connected)."""
    return DynamoDbDocumentStore(config.dynamodb)


def create_flusher(config: EntityManagerConfig, store: DocumentStore) -> Flusher:
    """Build the flusher selected by ``config.flush``.

    Raises:
        ValueError: If the strategy is not supported
    """
    flush = config.flush
    if flush.strategy == FlushStrategy.PARALLEL:
        return ParallelFlusher(store)
    if flush.strategy == FlushStrategy.TRANSACTIONAL:
        fallback = ParallelFlusher(store) if flush.fallback == FallbackStrategy.PARALLEL else None
        return TransactionalFlusher(
            store,
            max_items=flush.transaction_max_items,
            limit_policy=flush.limit_policy,
            fallback=fallback,
        )
    raise ValueError(f"Unsupported flush strategy: {flush.strategy}")


def create_entity_manager(
    config: EntityManagerConfig,
    store: DocumentStore,
    table_configs: Iterable[TableConfig[Any]],
    events: Optional[EventEmitter] = None,
) -> EntityManager:
    """Entity manager writing through ``store`` with the configured flusher."""
    flusher = create_flusher(config, store)
    logger.info(
        "Entity manager created",
        extra={
            "flusher": type(flusher).__name__,
            "max_items": config.flush.transaction_max_items,
        },
    )
    return EntityManager(flusher, table_configs, events=events)
