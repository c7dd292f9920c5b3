"""Persistent store interface and the logical schema shared by all backends.

The store is partitioned into four logical partitions.  Each record is a
JSON-compatible dict keyed by its primary key field; some partitions declare
secondary indexes that :meth:`PersistentStore.query_by_index` scans in index
order.  Operations are independent transactions: no cross-partition
atomicity is assumed.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from ridesync.exceptions import StoreError


class Partition(enum.StrEnum):
    PENDING_ACTIONS = "pendingActions"
    KEY_VALUE = "keyValue"
    TRIPS_CACHE = "tripsCache"
    PLACES_CACHE = "placesCache"


@dataclass(frozen=True)
class PartitionSchema:
    primary_key: str
    indexes: tuple[str, ...] = ()


SCHEMA: dict[Partition, PartitionSchema] = {
    Partition.PENDING_ACTIONS: PartitionSchema("id", ("kind", "enqueuedAt")),
    Partition.KEY_VALUE: PartitionSchema("key"),
    Partition.TRIPS_CACHE: PartitionSchema("id", ("frequency", "lastUsedAt")),
    Partition.PLACES_CACHE: PartitionSchema("id", ("frequency", "lastUsedAt")),
}


@dataclass(frozen=True)
class IndexRange:
    """Bounds on an index value; ``None`` means unbounded on that side."""

    lower: Any = None
    upper: Any = None
    lower_open: bool = False
    upper_open: bool = False

    @classmethod
    def only(cls, value: Any) -> IndexRange:
        return cls(lower=value, upper=value)

    @classmethod
    def at_most(cls, value: Any, *, open_: bool = False) -> IndexRange:
        return cls(upper=value, upper_open=open_)

    @classmethod
    def at_least(cls, value: Any, *, open_: bool = False) -> IndexRange:
        return cls(lower=value, lower_open=open_)

    def contains(self, value: Any) -> bool:
        if value is None:
            return False
        if self.lower is not None:
            if value < self.lower or (self.lower_open and value == self.lower):
                return False
        if self.upper is not None:
            if value > self.upper or (self.upper_open and value == self.upper):
                return False
        return True


ALL = IndexRange()


def as_partition(partition: Partition | str) -> Partition:
    try:
        return Partition(partition)
    except ValueError as exc:
        raise StoreError(f"Unknown partition {partition!r}", partition=str(partition)) from exc


def schema_for(partition: Partition | str) -> PartitionSchema:
    return SCHEMA[as_partition(partition)]


def primary_key_of(partition: Partition, record: dict[str, Any]) -> str:
    """Return the primary key of *record*, raising :class:`StoreError` when missing."""
    field = schema_for(partition).primary_key
    key = record.get(field)
    if key is None or key == "":
        raise StoreError(f"Record for {partition} has no {field!r}", partition=partition)
    return str(key)


def require_index(partition: Partition, index_name: str) -> None:
    if index_name not in schema_for(partition).indexes:
        raise StoreError(f"{partition} has no index {index_name!r}", partition=partition)


def order_by_index(
    records: Iterable[dict[str, Any]],
    index_name: str,
    key_range: IndexRange,
    *,
    descending: bool = False,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Filter *records* to *key_range* and sort them by the index value.

    Records without the indexed field are not part of the index and are
    skipped.  The sort is stable, so equal index values keep their input
    order.
    """
    matching = [r for r in records if key_range.contains(r.get(index_name))]
    matching.sort(key=lambda r: r[index_name], reverse=descending)
    if limit is not None:
        matching = matching[: max(limit, 0)]
    return matching


class PersistentStore(Protocol):
    """Structural store interface used by the queue, caches and snapshots.

    Every method raises :class:`~ridesync.exceptions.StoreError` on failure.
    """

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def put(self, partition: Partition, record: dict[str, Any]) -> None: ...

    async def delete(self, partition: Partition, key: str) -> None: ...

    async def get(self, partition: Partition, key: str) -> dict[str, Any] | None: ...

    async def get_all(self, partition: Partition) -> list[dict[str, Any]]: ...

    async def query_by_index(
        self,
        partition: Partition,
        index_name: str,
        key_range: IndexRange = ALL,
        *,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...
