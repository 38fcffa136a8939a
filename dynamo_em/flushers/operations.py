"""
Translation of tracked items into guarded store writes.

Both flushers build their writes here so the parallel and the transactional
strategies apply exactly the same condition rules:

- create: put guarded by an existence check on the key attributes, version
  attribute initialized to 0
- update: skipped when unchanged; otherwise put with version + 1, guarded by
  the last known version
- delete: delete by key, guarded by the last known version

The version guard is skipped when versioning is disabled or the known
version is 0 (nothing to compare against).

Building a write records its attributes on the tracked item
(``written_state``); the manager snapshots from that record after a
successful flush.
"""

from __future__ import annotations

from typing import Optional

from ..store.base import (
    AttributeEquals,
    AttributeNotExists,
    Condition,
    DeleteOperation,
    PutOperation,
    WriteOperation,
)
from ..tables import AttributeMap, TableConfig, serialize_state
from ..tracking import CreatedItem, DeletedItem, TrackedItem, UpdatedItem


def add_version_to_create_item(item: AttributeMap, table_config: TableConfig) -> AttributeMap:
    if table_config.version_key is not None:
        item[table_config.version_key] = 0
    return item


def add_version_to_update_item(item: AttributeMap, tracked: TrackedItem) -> AttributeMap:
    if tracked.table_config.version_key is not None:
        item[tracked.table_config.version_key] = (tracked.version or 0) + 1
    return item


def version_condition(tracked: TrackedItem) -> Optional[Condition]:
    version_key = tracked.table_config.version_key
    if version_key is None or not tracked.version:
        return None
    return Condition.all(AttributeEquals(version_key, tracked.version))


def key_absent_condition(table_config: TableConfig) -> Condition:
    return Condition.all(
        *(AttributeNotExists(name) for name in table_config.key_schema.attribute_names)
    )


def build_create(tracked: CreatedItem) -> PutOperation:
    config = tracked.table_config
    attributes = tracked.marshal()
    tracked.record_written(attributes)
    return PutOperation(
        table_name=config.table_name,
        item=add_version_to_create_item(dict(attributes), config),
        condition=key_absent_condition(config),
    )


def build_update(tracked: UpdatedItem) -> Optional[PutOperation]:
    attributes = tracked.marshal()
    if serialize_state(attributes) == tracked.initial_status:
        return None
    tracked.record_written(attributes)
    return PutOperation(
        table_name=tracked.table_name,
        item=add_version_to_update_item(dict(attributes), tracked),
        condition=version_condition(tracked),
    )


def build_delete(tracked: DeletedItem) -> DeleteOperation:
    return DeleteOperation(
        table_name=tracked.table_name,
        key=tracked.get_key(),
        condition=version_condition(tracked),
    )


def build_operation(tracked: TrackedItem) -> Optional[WriteOperation]:
    """Write needed for one tracked item, or None when there is nothing to do."""
    if isinstance(tracked, CreatedItem):
        return build_create(tracked)
    if isinstance(tracked, UpdatedItem):
        return build_update(tracked)
    if isinstance(tracked, DeletedItem):
        return build_delete(tracked)
    raise TypeError(f"Unknown tracked item type: {type(tracked).__name__}")
