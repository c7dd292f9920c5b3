"""In-memory store used for tests and as the degraded-mode fallback."""

from __future__ import annotations

import copy
from typing import Any

from ridesync.store.base import (
    ALL,
    IndexRange,
    Partition,
    as_partition,
    order_by_index,
    primary_key_of,
    require_index,
)


class MemoryStore:
    """Dict-backed :class:`~ridesync.store.base.PersistentStore`.

    Records are deep-copied on the way in and out so callers can never
    mutate stored state by accident.  Insertion order is preserved per
    partition.
    """

    def __init__(self) -> None:
        self._partitions: dict[Partition, dict[str, dict[str, Any]]] = {p: {} for p in Partition}

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def put(self, partition: Partition, record: dict[str, Any]) -> None:
        partition = as_partition(partition)
        key = primary_key_of(partition, record)
        self._partitions[partition][key] = copy.deepcopy(record)

    async def delete(self, partition: Partition, key: str) -> None:
        self._partitions[as_partition(partition)].pop(key, None)

    async def get(self, partition: Partition, key: str) -> dict[str, Any] | None:
        record = self._partitions[as_partition(partition)].get(key)
        return copy.deepcopy(record) if record is not None else None

    async def get_all(self, partition: Partition) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._partitions[as_partition(partition)].values()]

    async def query_by_index(
        self,
        partition: Partition,
        index_name: str,
        key_range: IndexRange = ALL,
        *,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        partition = as_partition(partition)
        require_index(partition, index_name)
        records = order_by_index(
            self._partitions[partition].values(),
            index_name,
            key_range,
            descending=descending,
            limit=limit,
        )
        return [copy.deepcopy(r) for r in records]

    def load_partition(self, partition: Partition, records: list[dict[str, Any]]) -> None:
        """Replace a partition's contents wholesale (used to seed a shadow copy)."""
        partition = as_partition(partition)
        self._partitions[partition] = {primary_key_of(partition, r): copy.deepcopy(r) for r in records}
