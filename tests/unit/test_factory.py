"""
Unit tests for the wiring helpers.
"""

import logging

import json_log_formatter
import pytest

from dynamo_em.config import (
    EntityManagerConfig,
    FallbackStrategy,
    FlushConfig,
    FlushStrategy,
    LimitPolicy,
    ObservabilityConfig,
)
from dynamo_em.factory import create_entity_manager, create_flusher, create_store, setup_logging
from dynamo_em.flushers import ParallelFlusher, TransactionalFlusher
from dynamo_em.store import DynamoDbDocumentStore, InMemoryDocumentStore
from dynamo_em.tables import KeySchema, TableConfig


@pytest.fixture
def store():
    return InMemoryDocumentStore({"users": KeySchema("id")})


class TestCreateFlusher:
    """Tests for create_flusher."""

    def test_parallel(self, store):
        config = EntityManagerConfig(flush=FlushConfig(strategy=FlushStrategy.PARALLEL))
        assert isinstance(create_flusher(config, store), ParallelFlusher)

    def test_transactional_defaults(self, store):
        flusher = create_flusher(EntityManagerConfig(), store)

        assert isinstance(flusher, TransactionalFlusher)
        assert flusher.max_items == 25
        assert flusher.limit_policy == LimitPolicy.FAIL
        assert flusher.fallback is None

    def test_transactional_with_fallback(self, store):
        config = EntityManagerConfig(
            flush=FlushConfig(
                transaction_max_items=10,
                limit_policy=LimitPolicy.CHUNK,
                fallback=FallbackStrategy.PARALLEL,
            )
        )
        flusher = create_flusher(config, store)

        assert flusher.max_items == 10
        assert flusher.limit_policy == LimitPolicy.CHUNK
        assert isinstance(flusher.fallback, ParallelFlusher)
        assert flusher.fallback.store is store


class TestCreateEntityManager:
    """Tests for create_entity_manager and create_store."""

    def test_manager_is_wired(self, store):
        users = TableConfig("users", KeySchema("id"))
        manager = create_entity_manager(EntityManagerConfig(), store, [users])

        assert isinstance(manager.flusher, TransactionalFlusher)
        assert manager.tables.get("users") is users

    def test_store_is_not_connected(self):
        store = create_store(EntityManagerConfig())
        assert isinstance(store, DynamoDbDocumentStore)
        assert not store.is_connected


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        setup_logging(EntityManagerConfig(
            observability=ObservabilityConfig(log_level="DEBUG", log_format="json")
        ))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_text_format(self):
        setup_logging(EntityManagerConfig())

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
