"""
Table configuration and registry.

A TableConfig tells the entity manager how to persist one kind of entity:
which table it lives in, which attributes form its key, which attribute holds
the optimistic-concurrency version, and how to marshal the in-memory object to
the attribute map written to the store.

Invariants:
    - table_name is unique within a registry
    - marshal is pure and deterministic; its output is used both for writing
      and for dirty-check snapshots
    - Keys are always read off the marshaled form, never off the live entity
    - The registry is frozen once handed to an EntityManager

How to change safely:
    - Changing serialize_state() changes every snapshot; entities tracked
      before the change will compare as dirty once
"""

from __future__ import annotations

import dataclasses
import datetime
import json
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, Iterable, Iterator, Mapping, Optional, TypeVar

from .errors import DuplicateTableError, RegistryFrozenError, UnknownTableError

logger = logging.getLogger(__name__)

E = TypeVar("E")

AttributeMap = Dict[str, Any]
Key = Dict[str, Any]
Marshaller = Callable[[Any], AttributeMap]


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return str(value)


def default_marshal(entity: Any) -> AttributeMap:
    """Marshal an entity to a plain attribute map.

    Dataclasses go through ``dataclasses.asdict``, mappings are copied and any
    other object contributes its public instance attributes. The result is
    normalized through a JSON round trip so only JSON-representable values
    reach the store: dates and times become ISO 8601 strings, Decimals become
    numbers, sets become lists and any other value its ``str()``.
    """
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        data = dataclasses.asdict(entity)
    elif isinstance(entity, Mapping):
        data = dict(entity)
    else:
        data = {k: v for k, v in vars(entity).items() if not k.startswith("_")}
    return json.loads(json.dumps(data, default=_json_default))


def serialize_state(attributes: AttributeMap) -> str:
    """Canonical string form of an attribute map, used for dirty-checking."""
    return json.dumps(attributes, sort_keys=True, separators=(",", ":"), default=repr)


@dataclass(frozen=True)
class KeySchema:
    """Primary key layout of a table.

    Attributes:
        hash_key: Partition key attribute name
        range_key: Sort key attribute name, if the table has one
    """

    hash_key: str
    range_key: Optional[str] = None

    @property
    def attribute_names(self) -> tuple[str, ...]:
        if self.range_key is None:
            return (self.hash_key,)
        return (self.hash_key, self.range_key)

    def extract(self, attributes: Mapping[str, Any]) -> Key:
        """Pull the key attributes out of a (marshaled) attribute map."""
        key: Key = {self.hash_key: attributes.get(self.hash_key)}
        if self.range_key is not None:
            key[self.range_key] = attributes.get(self.range_key)
        return key

    def same_key(self, k1: Mapping[str, Any], k2: Mapping[str, Any]) -> bool:
        """Hash equality, plus range equality when a range key is configured."""
        if k1.get(self.hash_key) != k2.get(self.hash_key):
            return False
        return self.range_key is None or k1.get(self.range_key) == k2.get(self.range_key)


@dataclass(frozen=True)
class TableConfig(Generic[E]):
    """Persistence configuration for one entity type.

    Attributes:
        table_name: Store table name
        key_schema: Key attributes
        version_key: Attribute holding the optimistic-concurrency version,
            or None to disable versioning for this table
        marshal: Entity -> attribute map function

    Example:
        >>> users = TableConfig(
        ...     table_name="users",
        ...     key_schema=KeySchema(hash_key="id"),
        ...     version_key="v",
        ... )
    """

    table_name: str
    key_schema: KeySchema
    version_key: Optional[str] = None
    marshal: Marshaller = default_marshal

    @property
    def versioned(self) -> bool:
        return self.version_key is not None

    def marshal_entity(self, entity: E) -> AttributeMap:
        return self.marshal(entity)

    def key_of(self, entity: E) -> Key:
        return self.key_schema.extract(self.marshal(entity))


class TableRegistry:
    """Registry of table configurations keyed by table name.

    The registry is populated when an EntityManager is built and frozen right
    after, so configurations cannot change under tracked items.

    Example:
        >>> registry = TableRegistry([users, orders])
        >>> registry.freeze()
        >>> registry.get("users").key_schema.hash_key
        'id'
    """

    def __init__(self, configs: Iterable[TableConfig[Any]] = ()) -> None:
        self._configs: Dict[str, TableConfig[Any]] = {}
        self._frozen = False
        self._lock = threading.Lock()
        for config in configs:
            self.register(config)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, config: TableConfig[Any]) -> None:
        """Register a table configuration.

        Raises:
            RegistryFrozenError: If the registry is frozen
            DuplicateTableError: If the table name is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register table '{config.table_name}': registry is frozen"
                )
            if config.table_name in self._configs:
                raise DuplicateTableError(config.table_name)
            self._configs[config.table_name] = config
        logger.debug(f"Registered table config: {config.table_name}")

    def freeze(self) -> None:
        self._frozen = True

    def get(self, table_name: str) -> TableConfig[Any]:
        """Look up a table configuration.

        Raises:
            UnknownTableError: If no configuration exists for the table
        """
        try:
            return self._configs[table_name]
        except KeyError:
            raise UnknownTableError(table_name) from None

    def __contains__(self, table_name: object) -> bool:
        return table_name in self._configs

    def __iter__(self) -> Iterator[TableConfig[Any]]:
        return iter(list(self._configs.values()))

    def __len__(self) -> int:
        return len(self._configs)
