"""
Unit tests for tracked item variants.

Tests cover:
- Version initialization per variant
- Dirty-checking on UpdatedItem
- Created -> Updated transition
"""

import pytest

from dynamo_em.tables import KeySchema, TableConfig
from dynamo_em.tracking import CreatedItem, DeletedItem, UpdatedItem


@pytest.fixture
def versioned():
    return TableConfig("entities", KeySchema("pk", "sk"), version_key="v")


@pytest.fixture
def unversioned():
    return TableConfig("entities", KeySchema("pk", "sk"))


@pytest.fixture
def entity():
    return {"pk": "h", "sk": "r", "value": "original"}


class TestCreatedItem:
    """Tests for CreatedItem."""

    def test_version_zero_when_versioned(self, versioned, entity):
        assert CreatedItem(entity, versioned).version == 0

    def test_version_none_when_unversioned(self, unversioned, entity):
        assert CreatedItem(entity, unversioned).version is None

    def test_get_key(self, versioned, entity):
        assert CreatedItem(entity, versioned).get_key() == {"pk": "h", "sk": "r"}

    def test_to_updated_keeps_entity_and_snapshots(self, versioned, entity):
        updated = CreatedItem(entity, versioned).to_updated()
        assert isinstance(updated, UpdatedItem)
        assert updated.entity is entity
        assert updated.version == 0
        assert not updated.has_changed


class TestUpdatedItem:
    """Tests for UpdatedItem."""

    def test_defaults_version_to_zero(self, versioned, entity):
        assert UpdatedItem(entity, versioned).version == 0

    def test_keeps_given_version(self, versioned, entity):
        assert UpdatedItem(entity, versioned, 4).version == 4

    def test_drops_version_when_unversioned(self, unversioned, entity):
        assert UpdatedItem(entity, unversioned, 4).version is None

    def test_not_changed_right_after_tracking(self, versioned, entity):
        assert not UpdatedItem(entity, versioned).has_changed

    def test_mutation_is_detected(self, versioned, entity):
        item = UpdatedItem(entity, versioned)
        entity["value"] = "changed"
        assert item.has_changed

    def test_reverting_mutation_is_clean(self, versioned, entity):
        item = UpdatedItem(entity, versioned)
        entity["value"] = "changed"
        entity["value"] = "original"
        assert not item.has_changed

    def test_set_state_refreshes_baseline(self, versioned, entity):
        item = UpdatedItem(entity, versioned)
        entity["value"] = "changed"
        item.set_state()
        assert not item.has_changed

    def test_snapshot_uses_marshal(self, entity):
        config = TableConfig(
            "entities",
            KeySchema("pk", "sk"),
            marshal=lambda e: {"pk": e["pk"], "sk": e["sk"]},
        )
        item = UpdatedItem(entity, config)
        entity["value"] = "not marshaled, so not a change"
        assert not item.has_changed


class TestDeletedItem:
    """Tests for DeletedItem."""

    def test_keeps_version(self, versioned, entity):
        assert DeletedItem(entity, versioned, 2).version == 2

    def test_defaults_version_to_zero(self, versioned, entity):
        assert DeletedItem(entity, versioned).version == 0


class TestWrittenState:
    """Snapshots taken from the recorded written state."""

    def test_to_updated_uses_written_state(self, versioned, entity):
        created = CreatedItem(entity, versioned)
        created.record_written(dict(entity))
        entity["value"] = "edited after the write was built"

        updated = created.to_updated()

        assert updated.has_changed

    def test_to_updated_without_record_snapshots_entity(self, versioned, entity):
        updated = CreatedItem(entity, versioned).to_updated()
        assert not updated.has_changed

    def test_set_state_with_explicit_state(self, versioned, entity):
        item = UpdatedItem(entity, versioned)
        written = item.record_written({"pk": "h", "sk": "r", "value": "written"})

        item.set_state(written)

        assert item.has_changed
        entity["value"] = "written"
        assert not item.has_changed

    def test_key_is_fixed_at_tracking_time(self, versioned, entity):
        item = DeletedItem(entity, versioned)
        entity["sk"] = "moved"
        assert item.get_key() == {"pk": "h", "sk": "r"}
