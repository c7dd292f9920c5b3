"""Store wrapper that falls back to memory when the primary store fails.

The application must stay usable without persistence, so a storage failure
is reported once and then absorbed: from that point on every operation is
served by an in-memory shadow that has been kept in step with the primary.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ridesync.exceptions import StoreError
from ridesync.store.base import (
    ALL,
    IndexRange,
    Partition,
    PersistentStore,
    as_partition,
    primary_key_of,
    require_index,
)
from ridesync.store.memory import MemoryStore

_logger = logging.getLogger(__name__)


class DegradableStore:
    """Wrap *primary* and degrade to memory-only mode on its first failure.

    Writes go to the primary first and are then mirrored into the shadow.
    Reads are served by the primary while it is healthy.  Malformed calls
    (missing primary key, undeclared index) are rejected up front and do
    not count as a storage failure.
    """

    def __init__(self, primary: PersistentStore) -> None:
        self._primary = primary
        self._shadow = MemoryStore()
        self._degraded = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[StoreError], None]] = []

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def degraded_reason(self) -> str | None:
        return self._reason

    def on_degraded(self, callback: Callable[[StoreError], None]) -> None:
        """Register a callback fired once when the store degrades.

        Registering after degradation has happened fires nothing; check
        :attr:`degraded` instead.
        """
        self._callbacks.append(callback)

    def _degrade(self, exc: StoreError) -> None:
        if self._degraded:
            return
        self._degraded = True
        self._reason = str(exc)
        _logger.warning("Persistent store unavailable, continuing in memory only: %s", exc)
        for callback in list(self._callbacks):
            try:
                callback(exc)
            except Exception:
                _logger.debug("on_degraded callback failed", exc_info=True)

    async def open(self) -> None:
        try:
            await self._primary.open()
            for partition in Partition:
                self._shadow.load_partition(partition, await self._primary.get_all(partition))
        except StoreError as exc:
            self._degrade(exc)

    async def close(self) -> None:
        try:
            await self._primary.close()
        except StoreError:
            _logger.debug("Closing primary store failed", exc_info=True)

    async def put(self, partition: Partition, record: dict[str, Any]) -> None:
        partition = as_partition(partition)
        primary_key_of(partition, record)
        if not self._degraded:
            try:
                await self._primary.put(partition, record)
            except StoreError as exc:
                self._degrade(exc)
        await self._shadow.put(partition, record)

    async def delete(self, partition: Partition, key: str) -> None:
        partition = as_partition(partition)
        if not self._degraded:
            try:
                await self._primary.delete(partition, key)
            except StoreError as exc:
                self._degrade(exc)
        await self._shadow.delete(partition, key)

    async def get(self, partition: Partition, key: str) -> dict[str, Any] | None:
        partition = as_partition(partition)
        if not self._degraded:
            try:
                return await self._primary.get(partition, key)
            except StoreError as exc:
                self._degrade(exc)
        return await self._shadow.get(partition, key)

    async def get_all(self, partition: Partition) -> list[dict[str, Any]]:
        partition = as_partition(partition)
        if not self._degraded:
            try:
                return await self._primary.get_all(partition)
            except StoreError as exc:
                self._degrade(exc)
        return await self._shadow.get_all(partition)

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
        if not self._degraded:
            try:
                return await self._primary.query_by_index(
                    partition, index_name, key_range, descending=descending, limit=limit
                )
            except StoreError as exc:
                self._degrade(exc)
        return await self._shadow.query_by_index(partition, index_name, key_range, descending=descending, limit=limit)
