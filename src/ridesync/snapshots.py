"""Key/value offline snapshots (profile, favorites, last known location, ...).

Snapshots are small blobs the UI wants available without a network round
trip.  They are loaded into memory once at startup so reads are
synchronous; writes go through to the ``keyValue`` partition.
"""

from __future__ import annotations

import copy
from typing import Any

from ridesync.store.base import Partition, PersistentStore

#: Defaults for the well-known snapshot keys when nothing is stored yet.
DEFAULT_SNAPSHOTS: dict[str, Any] = {
    "trips": [],
    "profile": None,
    "favorites": [],
    "paymentMethods": [],
    "lastKnownLocation": None,
    "frequentRoutes": [],
}


class SnapshotStore:
    def __init__(self, store: PersistentStore) -> None:
        self._store = store
        self._values: dict[str, Any] = copy.deepcopy(DEFAULT_SNAPSHOTS)

    async def load(self) -> None:
        values = copy.deepcopy(DEFAULT_SNAPSHOTS)
        for record in await self._store.get_all(Partition.KEY_VALUE):
            values[str(record["key"])] = record.get("data")
        self._values = values

    async def save(self, key: str, data: Any) -> None:
        if not key:
            raise ValueError("snapshot key must be non-empty")
        await self._store.put(Partition.KEY_VALUE, {"key": key, "data": data})
        self._values[key] = copy.deepcopy(data)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._values:
            return default
        return copy.deepcopy(self._values[key])

    def keys(self) -> list[str]:
        return list(self._values)
