"""Persistence layer.

All state owned by the offline core (pending actions, cached entities,
offline snapshots) goes through a :class:`PersistentStore`.  The queue and
caches depend only on that interface.
"""

from __future__ import annotations

from ridesync.config import RideSyncConfig
from ridesync.store.base import (
    ALL,
    SCHEMA,
    IndexRange,
    Partition,
    PartitionSchema,
    PersistentStore,
)
from ridesync.store.degrading import DegradableStore
from ridesync.store.memory import MemoryStore
from ridesync.store.sqlite import SqliteStore


def build_store(config: RideSyncConfig) -> DegradableStore:
    """Build the store described by *config*, wrapped for degraded mode.

    Without a ``db_path`` (or with persistence disabled) the primary is a
    :class:`MemoryStore`, so nothing survives a restart but the API is
    identical.
    """
    primary: PersistentStore
    if config.persist_enabled and config.db_path:
        primary = SqliteStore(config.db_path)
    else:
        primary = MemoryStore()
    return DegradableStore(primary)


__all__ = [
    "ALL",
    "SCHEMA",
    "DegradableStore",
    "IndexRange",
    "MemoryStore",
    "Partition",
    "PartitionSchema",
    "PersistentStore",
    "SqliteStore",
    "build_store",
]
