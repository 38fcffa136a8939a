"""
Tracked item variants.

A tracked item records what the entity manager intends to do with one entity
on the next flush:

- CreatedItem: the entity does not exist in the store yet; flush creates it
- UpdatedItem: the entity exists; flush writes it back if it changed since
  the last snapshot
- DeletedItem: flush removes the entity from the store

Invariants:
    - version is None when the table is not versioned, an int otherwise
    - Keys are computed from the marshaled entity once, when tracking starts
    - UpdatedItem.initial_status is only refreshed by set_state(); after a
      flush it is the state that was written, not the live entity

How to change safely:
    - Flushers dispatch on these three classes exhaustively; a new variant
      needs handling in flushers/operations.py
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .tables import AttributeMap, Key, TableConfig, serialize_state


def _normalize_version(table_config: TableConfig[Any], version: Optional[int]) -> Optional[int]:
    if not table_config.versioned:
        return None
    return version or 0


@dataclass(eq=False)
class _TrackedItemBase:
    entity: Any
    table_config: TableConfig[Any]
    version: Optional[int] = None
    # Serialized attributes of the write built for the current flush
    written_state: Optional[str] = field(default=None, init=False, repr=False)
    _key: Key = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._key = self.table_config.key_of(self.entity)

    @property
    def table_name(self) -> str:
        return self.table_config.table_name

    def marshal(self) -> AttributeMap:
        return self.table_config.marshal_entity(self.entity)

    def get_key(self) -> Key:
        """Key computed when the item started being tracked."""
        return dict(self._key)

    def record_written(self, attributes: AttributeMap) -> str:
        """Remember the attributes sent to the store for this flush."""
        self.written_state = serialize_state(attributes)
        return self.written_state


@dataclass(eq=False)
class CreatedItem(_TrackedItemBase):
    """Entity that does not exist in the store yet."""

    def __post_init__(self) -> None:
        super().__post_init__()
        self.version = 0 if self.table_config.versioned else None

    def to_updated(self) -> UpdatedItem:
        """Tracked item for the entity once it has been created.

        The snapshot is the state that was written, so edits made while the
        create was in flight stay dirty.
        """
        updated = UpdatedItem(self.entity, self.table_config, self.version)
        if self.written_state is not None:
            updated.set_state(self.written_state)
        return updated


@dataclass(eq=False)
class UpdatedItem(_TrackedItemBase):
    """Entity that exists in the store and is dirty-checked on flush.

    Attributes:
        initial_status: Canonical serialized snapshot taken at tracking time
            or after the last successful flush
    """

    initial_status: Optional[str] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.version = _normalize_version(self.table_config, self.version)
        self.set_state()

    def set_state(self, state: Optional[str] = None) -> None:
        """Reset the snapshot to ``state``, or to the entity as it is now."""
        self.initial_status = state if state is not None else serialize_state(self.marshal())

    @property
    def has_changed(self) -> bool:
        return serialize_state(self.marshal()) != self.initial_status


@dataclass(eq=False)
class DeletedItem(_TrackedItemBase):
    """Entity to remove from the store, regardless of in-memory drift."""

    def __post_init__(self) -> None:
        super().__post_init__()
        self.version = _normalize_version(self.table_config, self.version)


TrackedItem = Union[CreatedItem, UpdatedItem, DeletedItem]

# id(entity) -> tracked item; every item holds its entity so ids are not reused
TrackedItems = Dict[int, TrackedItem]
