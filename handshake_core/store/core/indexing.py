"""
Key and secondary-index derivation.

Every entity family declares an EntitySchema: how its primary key and each
secondary-index key pair are derived from item attributes. Derivations are
pure functions of the item, so the same item always yields the same keys and
an update can recompute all index fields from the merged item.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..constants import ATTR_CREATED_AT, ATTR_ID, ATTR_PK, ATTR_SK, ATTR_UPDATED_AT, INDEX_KEYS
from ..exceptions import InvalidEntityError
from ..utils import format_key, isoformat

KeyFunction = Callable[[dict[str, Any]], str | None]


def compose(prefix: str | None, *attributes: str) -> KeyFunction:
    """
    Key function joining a prefix and attribute values with '#'.

    Returns None (the item is left out of the index) when any attribute is
    missing or empty.
    """

    def derive(item: dict[str, Any]) -> str | None:
        values = [item.get(name) for name in attributes]
        if any(value is None or value == "" for value in values):
            return None
        if prefix is None:
            return "#".join(str(value) for value in values)
        return format_key(prefix, *values)

    return derive


def constant(value: str) -> KeyFunction:
    """Key function that always yields ``value``."""
    return lambda item: value


@dataclass(frozen=True)
class IndexProjection:
    """Partition and sort derivation for the table key or one secondary index."""

    index_name: str | None
    partition: KeyFunction
    sort: KeyFunction

    @property
    def attributes(self) -> tuple[str, str]:
        if self.index_name is None:
            return ATTR_PK, ATTR_SK
        return INDEX_KEYS[self.index_name]


@dataclass(frozen=True)
class EntitySchema:
    """
    Key layout of one entity family.

    Attributes:
        name: Entity family name (used by the repair tool)
        key: Primary key derivation (index_name=None)
        indexes: Secondary-index derivations; an index whose partition or
            sort derivation yields None is sparse for that item
        immutable: Attributes a patch may never change, on top of id,
            createdAt and every key attribute
        key_prefixes: (PK prefix, SK prefix) selecting the family in a scan
    """

    name: str
    key: IndexProjection
    indexes: tuple[IndexProjection, ...] = ()
    immutable: frozenset[str] = field(default_factory=frozenset)
    key_prefixes: tuple[str, str] = ("", "")

    @property
    def index_attributes(self) -> tuple[str, ...]:
        return tuple(attr for projection in self.indexes for attr in projection.attributes)

    @property
    def protected(self) -> frozenset[str]:
        return (
            self.immutable
            | {ATTR_ID, ATTR_CREATED_AT, ATTR_PK, ATTR_SK}
            | set(self.index_attributes)
        )


@dataclass
class PatchResult:
    """Outcome of merging a patch into an item."""

    item: dict[str, Any]
    updates: dict[str, Any]
    remove: list[str]


def primary_key(schema: EntitySchema, item: dict[str, Any]) -> dict[str, str]:
    """
    Derive the primary key of an item.

    Raises:
        InvalidEntityError: If an attribute the key is built from is missing
    """
    pk = schema.key.partition(item)
    sk = schema.key.sort(item)
    if pk is None or sk is None:
        raise InvalidEntityError(f"Cannot derive {schema.name} key from item")
    return {ATTR_PK: pk, ATTR_SK: sk}


def index_fields(schema: EntitySchema, item: dict[str, Any]) -> tuple[dict[str, str], list[str]]:
    """
    Derive every secondary-index key field of an item.

    Args:
        schema: Entity schema
        item: Item attributes

    Returns:
        Tuple of (index attributes to set, index attributes that must be absent)
    """
    present: dict[str, str] = {}
    absent: list[str] = []
    for projection in schema.indexes:
        pk_attr, sk_attr = projection.attributes
        pk = projection.partition(item)
        sk = projection.sort(item)
        if pk is None or sk is None:
            absent.extend([pk_attr, sk_attr])
        else:
            present[pk_attr] = pk
            present[sk_attr] = sk
    return present, absent


def build_item(schema: EntitySchema, attributes: dict[str, Any]) -> dict[str, Any]:
    """
    Build a complete item: attributes plus primary key and index fields.

    Attributes whose value is None are dropped.
    """
    item = {name: value for name, value in attributes.items() if value is not None}
    present, _ = index_fields(schema, item)
    item.update(present)
    item.update(primary_key(schema, item))
    return item


def apply_patch(
    schema: EntitySchema,
    current: dict[str, Any],
    changes: dict[str, Any],
    now: datetime,
) -> PatchResult:
    """
    Merge changes into the current item and recompute all index fields.

    Index fields are recomputed unconditionally from the merged item, so
    applying the same changes twice yields the same item apart from
    updatedAt.

    Args:
        schema: Entity schema
        current: Item as currently stored
        changes: Attribute changes (camelCase)
        now: Timestamp for updatedAt

    Returns:
        PatchResult with the merged item and the SET/REMOVE sets to write

    Raises:
        InvalidEntityError: If the changes touch a key-bearing attribute
    """
    forbidden = sorted(set(changes) & schema.protected)
    if forbidden:
        raise InvalidEntityError(
            f"Cannot change {', '.join(forbidden)} on {schema.name}"
        )

    merged = {**current, **changes, ATTR_UPDATED_AT: isoformat(now)}
    present, absent = index_fields(schema, merged)

    updates = {**changes, ATTR_UPDATED_AT: merged[ATTR_UPDATED_AT], **present}
    remove = [attr for attr in absent if attr in current]

    merged.update(present)
    for attr in absent:
        merged.pop(attr, None)
    return PatchResult(item=merged, updates=updates, remove=remove)


def index_drift(schema: EntitySchema, item: dict[str, Any]) -> tuple[dict[str, str], list[str]]:
    """
    Compare stored index fields against their derivation.

    Returns:
        Tuple of (index attributes to rewrite, stale index attributes to
        remove); both empty when the item is consistent
    """
    present, absent = index_fields(schema, item)
    rewrite = {attr: value for attr, value in present.items() if item.get(attr) != value}
    stale = [attr for attr in absent if attr in item]
    return rewrite, stale
