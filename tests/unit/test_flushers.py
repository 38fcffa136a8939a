"""
Unit tests for the parallel and transactional flushers.

Flushers are driven directly with a hand-built tracked set so their
behavior can be checked without an EntityManager.

Tests cover:
- Write dispatch per tracked item variant
- Failure aggregation in ParallelFlusher
- Limit handling (fail, chunk, fallback) in TransactionalFlusher
"""

import pytest

from dynamo_em.config import LimitPolicy
from dynamo_em.errors import ParallelFlushError, TransactionItemsLimitReached
from dynamo_em.events import EventEmitter, EventType
from dynamo_em.flushers import ParallelFlusher, TransactionalFlusher
from dynamo_em.store.base import StoreError, TransactionCanceledError
from dynamo_em.store.memory import InMemoryDocumentStore
from dynamo_em.tables import KeySchema, TableConfig
from dynamo_em.tracking import CreatedItem, DeletedItem, UpdatedItem

TABLE = TableConfig("entities", KeySchema("pk", "sk"), version_key="v")


def tracked_set(*items):
    return {id(item.entity): item for item in items}


def created(n):
    return CreatedItem({"pk": "h", "sk": f"r{n}", "n": n}, TABLE)


@pytest.fixture
def store():
    return InMemoryDocumentStore({"entities": TABLE.key_schema})


class TestParallelFlusher:
    """Tests for ParallelFlusher."""

    @pytest.mark.asyncio
    async def test_empty_flush_makes_no_calls(self, store):
        await ParallelFlusher(store).flush({})
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_one_call_per_pending_item(self, store):
        store.set_item("entities", {"pk": "h", "sk": "old", "v": 1})
        unchanged = UpdatedItem({"pk": "h", "sk": "same", "v": 1}, TABLE, 1)
        changed_entity = {"pk": "h", "sk": "upd", "value": "a"}
        changed = UpdatedItem(changed_entity, TABLE)
        changed_entity["value"] = "b"

        await ParallelFlusher(store).flush(tracked_set(
            created(1),
            unchanged,
            changed,
            DeletedItem({"pk": "h", "sk": "old"}, TABLE, 1),
        ))

        assert sorted(call.method for call in store.calls) == ["delete", "put", "put"]
        assert store.get_item("entities", {"pk": "h", "sk": "r1"})["v"] == 0
        assert store.get_item("entities", {"pk": "h", "sk": "upd"}) == {
            "pk": "h", "sk": "upd", "value": "b", "v": 1,
        }
        assert store.get_item("entities", {"pk": "h", "sk": "old"}) is None

    @pytest.mark.asyncio
    async def test_single_failure_is_reraised_unchanged(self, store):
        """With one failed write the store error itself is raised."""
        error = StoreError("throttled")
        store.fail_on_key("entities", {"pk": "h", "sk": "r2"}, error)

        with pytest.raises(StoreError) as exc_info:
            await ParallelFlusher(store).flush(tracked_set(created(1), created(2), created(3)))

        assert exc_info.value is error
        # The other writes were still applied
        assert store.item_count("entities") == 2

    @pytest.mark.asyncio
    async def test_several_failures_are_aggregated(self, store):
        first = StoreError("first")
        second = StoreError("second")
        store.fail_on_key("entities", {"pk": "h", "sk": "r1"}, first)
        store.fail_on_key("entities", {"pk": "h", "sk": "r3"}, second)

        with pytest.raises(ParallelFlushError) as exc_info:
            await ParallelFlusher(store).flush(tracked_set(created(1), created(2), created(3)))

        err = exc_info.value
        assert err.attempted == 3
        assert err.errors == [first, second]
        assert [key for _, key, _ in err.failures] == [
            {"pk": "h", "sk": "r1"},
            {"pk": "h", "sk": "r3"},
        ]
        assert store.item_count("entities") == 1


class TestTransactionalFlusher:
    """Tests for TransactionalFlusher."""

    def test_max_items_must_be_positive(self, store):
        with pytest.raises(ValueError):
            TransactionalFlusher(store, max_items=0)

    @pytest.mark.asyncio
    async def test_empty_flush_makes_no_calls(self, store):
        await TransactionalFlusher(store).flush({})
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_single_transaction_in_insertion_order(self, store):
        items = [created(n) for n in range(3)]

        await TransactionalFlusher(store, max_items=3).flush(tracked_set(*items))

        assert len(store.calls) == 1
        call = store.calls[0]
        assert call.method == "transact_write"
        assert [op.item["sk"] for op in call.operations] == ["r0", "r1", "r2"]

    @pytest.mark.asyncio
    async def test_limit_reached_without_fallback(self, store):
        events = EventEmitter()
        exceeded = []
        events.on(EventType.LIMIT_EXCEEDED, lambda *args: exceeded.append(args))

        with pytest.raises(TransactionItemsLimitReached) as exc_info:
            await TransactionalFlusher(store, max_items=2).flush(
                tracked_set(*(created(n) for n in range(3))), events
            )

        assert exc_info.value.items_count == 3
        assert exc_info.value.limit == 2
        assert store.calls == []
        assert exceeded == []

    @pytest.mark.asyncio
    async def test_unchanged_items_do_not_count_toward_limit(self, store):
        items = [UpdatedItem({"pk": "h", "sk": f"u{n}"}, TABLE) for n in range(5)]

        await TransactionalFlusher(store, max_items=2).flush(tracked_set(created(1), *items))

        assert store.write_count == 1

    @pytest.mark.asyncio
    async def test_fallback_gets_whole_set(self, store):
        events = EventEmitter()
        exceeded = []
        events.on(EventType.LIMIT_EXCEEDED, lambda *args: exceeded.append(args))
        flusher = TransactionalFlusher(store, max_items=2, fallback=ParallelFlusher(store))

        await flusher.flush(tracked_set(*(created(n) for n in range(3))), events)

        assert [call.method for call in store.calls] == ["put", "put", "put"]
        assert store.item_count("entities") == 3
        assert exceeded == [(3, 2)]

    @pytest.mark.asyncio
    async def test_chunk_policy_splits_in_order(self, store):
        events = EventEmitter()
        exceeded = []
        events.on(EventType.LIMIT_EXCEEDED, lambda *args: exceeded.append(args))
        flusher = TransactionalFlusher(store, max_items=2, limit_policy=LimitPolicy.CHUNK)

        await flusher.flush(tracked_set(*(created(n) for n in range(5))), events)

        assert [len(call.operations) for call in store.calls] == [2, 2, 1]
        assert [op.item["sk"] for call in store.calls for op in call.operations] == [
            "r0", "r1", "r2", "r3", "r4",
        ]
        assert exceeded == [(5, 2)]

    @pytest.mark.asyncio
    async def test_failed_chunk_stops_later_chunks(self, store):
        store.set_item("entities", {"pk": "h", "sk": "r2"})
        flusher = TransactionalFlusher(store, max_items=2, limit_policy=LimitPolicy.CHUNK)

        with pytest.raises(TransactionCanceledError):
            await flusher.flush(tracked_set(*(created(n) for n in range(5))))

        # First chunk applied, second cancelled, third never sent
        assert len(store.calls) == 2
        assert store.get_item("entities", {"pk": "h", "sk": "r0"}) is not None
        assert store.get_item("entities", {"pk": "h", "sk": "r3"}) is None
        assert store.get_item("entities", {"pk": "h", "sk": "r4"}) is None

    @pytest.mark.asyncio
    async def test_existing_key_cancels_transaction(self, store):
        store.set_item("entities", {"pk": "h", "sk": "r1"})

        with pytest.raises(TransactionCanceledError):
            await TransactionalFlusher(store).flush(tracked_set(created(0), created(1)))

        assert store.get_item("entities", {"pk": "h", "sk": "r0"}) is None
