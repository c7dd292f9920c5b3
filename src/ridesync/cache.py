"""Frequency-ranked cache of trips and places used for repeat bookings.

Recency alone is not a good eviction signal here: a place visited once long
ago should disappear, but a place visited repeatedly is a favorite and stays
indefinitely, even if it has not been used for a while.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ridesync._constants import MS_PER_DAY
from ridesync.models._base import now_ms
from ridesync.models.cache import CachedEntity
from ridesync.store.base import ALL, IndexRange, Partition, PersistentStore

_logger = logging.getLogger(__name__)


class EntityCache:
    """Cache of :class:`CachedEntity` records in one store partition.

    Usage::

        places = EntityCache(store, Partition.PLACES_CACHE)
        await places.record("place-42", {"name": "Airport", "lat": 5.3, "lng": -4.0})
        favorites = await places.top_by_frequency(5)
    """

    def __init__(
        self,
        store: PersistentStore,
        partition: Partition,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if partition not in (Partition.TRIPS_CACHE, Partition.PLACES_CACHE):
            raise ValueError(f"{partition} is not a cache partition")
        self._store = store
        self._partition = partition
        self._clock = clock
        # Serializes read-modify-write sequences on this partition.
        self._lock = asyncio.Lock()

    @property
    def partition(self) -> Partition:
        return self._partition

    async def record(self, entity_id: str, payload: dict[str, Any] | None = None) -> CachedEntity:
        """Insert the entity with ``frequency=1`` or bump an existing one."""
        payload = dict(payload or {})
        async with self._lock:
            existing = await self.get(entity_id)
            now = self._clock()
            if existing is None:
                entity = CachedEntity(id=entity_id, payload=payload, last_used_at=now)
            else:
                entity = existing.touched(payload, now)
            await self._store.put(self._partition, entity.to_record())
        return entity

    async def get(self, entity_id: str) -> CachedEntity | None:
        record = await self._store.get(self._partition, entity_id)
        if record is None:
            return None
        return CachedEntity.from_record(record)

    async def all(self) -> list[CachedEntity]:
        """Every cached entity, most recently used first."""
        records = await self._store.query_by_index(self._partition, "lastUsedAt", ALL, descending=True)
        return [CachedEntity.from_record(r) for r in records]

    async def top_by_frequency(self, n: int = 10) -> list[CachedEntity]:
        """Top *n* entities by frequency, ties broken by most recent use."""
        if n <= 0:
            return []
        records = await self._store.query_by_index(self._partition, "frequency", ALL, descending=True)
        entities = [CachedEntity.from_record(r) for r in records]
        entities.sort(key=lambda e: (e.frequency, e.last_used_at), reverse=True)
        return entities[:n]

    async def evict_stale(self, max_age_days: float) -> int:
        """Remove single-use entities not used for *max_age_days*.

        Entities with ``frequency >= 2`` are never removed here.  With
        ``max_age_days=0`` every single-use entity goes.  Returns the number
        of entities removed.
        """
        if max_age_days < 0:
            raise ValueError("max_age_days must be >= 0")
        removed = 0
        async with self._lock:
            cutoff = self._clock() - int(max_age_days * MS_PER_DAY)
            candidates = await self._store.query_by_index(self._partition, "lastUsedAt", IndexRange.at_most(cutoff))
            for record in candidates:
                entity = CachedEntity.from_record(record)
                if entity.is_frequent:
                    continue
                await self._store.delete(self._partition, entity.id)
                removed += 1

        if removed:
            _logger.debug("Evicted %d stale entr%s from %s", removed, "y" if removed == 1 else "ies", self._partition)
        return removed

    async def clear(self) -> None:
        async with self._lock:
            for record in await self._store.get_all(self._partition):
                await self._store.delete(self._partition, str(record["id"]))
