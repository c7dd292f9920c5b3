from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from ridesync.config import RideSyncConfig
from ridesync.exceptions import StoreError
from ridesync.store import ALL, DegradableStore, IndexRange, MemoryStore, Partition, SqliteStore, build_store
from ridesync.store.base import order_by_index


def _action(action_id: str, enqueued_at: int, kind: str = "rating") -> dict[str, Any]:
    return {"id": action_id, "kind": kind, "payload": {}, "enqueuedAt": enqueued_at, "attempts": 0, "maxAttempts": 3}


def _place(place_id: str, frequency: int, last_used_at: int) -> dict[str, Any]:
    return {"id": place_id, "payload": {"name": place_id}, "frequency": frequency, "lastUsedAt": last_used_at}


class FailingStore(MemoryStore):
    """Memory store whose operations start failing on demand."""

    def __init__(self, *, fail_open: bool = False) -> None:
        super().__init__()
        self.fail_open = fail_open
        self.failing = False

    async def open(self) -> None:
        if self.fail_open:
            raise StoreError("disk is gone")

    async def put(self, partition: Partition, record: dict[str, Any]) -> None:
        if self.failing:
            raise StoreError("quota exceeded", partition=partition)
        await super().put(partition, record)

    async def get_all(self, partition: Partition) -> list[dict[str, Any]]:
        if self.failing:
            raise StoreError("read failed", partition=partition)
        return await super().get_all(partition)


def test_index_range_bounds() -> None:
    assert IndexRange.only(5).contains(5)
    assert not IndexRange.only(5).contains(6)
    assert IndexRange.at_most(10).contains(10)
    assert not IndexRange.at_most(10, open_=True).contains(10)
    assert IndexRange.at_least(3).contains(3)
    assert not IndexRange.at_least(3, open_=True).contains(3)
    assert ALL.contains(0)
    assert not ALL.contains(None)


def test_order_by_index_is_stable_and_skips_unindexed_records() -> None:
    records = [_place("a", 2, 10), _place("b", 1, 20), _place("c", 2, 30), {"id": "d"}]

    ordered = order_by_index(records, "frequency", ALL, descending=True)

    assert [r["id"] for r in ordered] == ["a", "c", "b"]


@pytest.mark.asyncio
async def test_memory_store_roundtrip_copies_records() -> None:
    store = MemoryStore()
    record = _action("a1", 100)
    await store.put(Partition.PENDING_ACTIONS, record)
    record["kind"] = "mutated"

    stored = await store.get(Partition.PENDING_ACTIONS, "a1")
    assert stored is not None
    assert stored["kind"] == "rating"

    stored["kind"] = "mutated-again"
    again = await store.get(Partition.PENDING_ACTIONS, "a1")
    assert again is not None and again["kind"] == "rating"


@pytest.mark.asyncio
async def test_memory_store_put_replaces_and_delete_is_idempotent() -> None:
    store = MemoryStore()
    await store.put(Partition.PENDING_ACTIONS, _action("a1", 100))
    await store.put(Partition.PENDING_ACTIONS, {**_action("a1", 100), "attempts": 2})

    records = await store.get_all(Partition.PENDING_ACTIONS)
    assert len(records) == 1
    assert records[0]["attempts"] == 2

    await store.delete(Partition.PENDING_ACTIONS, "a1")
    await store.delete(Partition.PENDING_ACTIONS, "a1")
    assert await store.get(Partition.PENDING_ACTIONS, "a1") is None


@pytest.mark.asyncio
async def test_memory_store_rejects_records_without_primary_key() -> None:
    store = MemoryStore()
    with pytest.raises(StoreError):
        await store.put(Partition.KEY_VALUE, {"data": 1})


@pytest.mark.asyncio
async def test_memory_store_rejects_unknown_index_and_partition() -> None:
    store = MemoryStore()
    with pytest.raises(StoreError):
        await store.query_by_index(Partition.KEY_VALUE, "key")
    with pytest.raises(StoreError):
        await store.get_all("bogus")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_memory_store_query_by_index_range_and_limit() -> None:
    store = MemoryStore()
    for place in (_place("a", 1, 100), _place("b", 3, 200), _place("c", 1, 300), _place("d", 2, 400)):
        await store.put(Partition.PLACES_CACHE, place)

    stale = await store.query_by_index(Partition.PLACES_CACHE, "lastUsedAt", IndexRange.at_most(300))
    assert [r["id"] for r in stale] == ["a", "b", "c"]

    top = await store.query_by_index(Partition.PLACES_CACHE, "frequency", ALL, descending=True, limit=2)
    assert [r["id"] for r in top] == ["b", "d"]


@pytest.mark.asyncio
async def test_sqlite_store_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "offline.db"
    store = SqliteStore(path)
    await store.open()
    await store.put(Partition.PENDING_ACTIONS, _action("a1", 100))
    await store.put(Partition.PENDING_ACTIONS, _action("a2", 200, kind="payment"))
    await store.put(Partition.KEY_VALUE, {"key": "profile", "data": {"name": "Ada"}})
    await store.close()

    reopened = SqliteStore(path)
    await reopened.open()
    try:
        actions = await reopened.get_all(Partition.PENDING_ACTIONS)
        assert [a["id"] for a in actions] == ["a1", "a2"]
        assert actions[1]["kind"] == "payment"
        assert await reopened.get(Partition.KEY_VALUE, "profile") == {"key": "profile", "data": {"name": "Ada"}}
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_sqlite_store_upsert_and_delete(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "offline.db")
    await store.open()
    try:
        await store.put(Partition.PENDING_ACTIONS, _action("a1", 100))
        await store.put(Partition.PENDING_ACTIONS, {**_action("a1", 100), "attempts": 1})
        records = await store.get_all(Partition.PENDING_ACTIONS)
        assert len(records) == 1
        assert records[0]["attempts"] == 1

        await store.delete(Partition.PENDING_ACTIONS, "a1")
        await store.delete(Partition.PENDING_ACTIONS, "missing")
        assert await store.get_all(Partition.PENDING_ACTIONS) == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_sqlite_store_query_matches_memory_store(tmp_path: Path) -> None:
    sqlite = SqliteStore(tmp_path / "offline.db")
    memory = MemoryStore()
    await sqlite.open()
    try:
        for place in (_place("a", 1, 100), _place("b", 3, 200), _place("c", 3, 300), _place("d", 2, 400)):
            await sqlite.put(Partition.PLACES_CACHE, place)
            await memory.put(Partition.PLACES_CACHE, place)

        for args, kwargs in (
            (("frequency", ALL), {"descending": True}),
            (("lastUsedAt", IndexRange.at_most(300)), {}),
            (("lastUsedAt", IndexRange(lower=100, upper=400, lower_open=True, upper_open=True)), {}),
            (("frequency", IndexRange.only(3)), {"limit": 1}),
        ):
            expected = await memory.query_by_index(Partition.PLACES_CACHE, *args, **kwargs)
            actual = await sqlite.query_by_index(Partition.PLACES_CACHE, *args, **kwargs)
            assert [r["id"] for r in actual] == [r["id"] for r in expected]
    finally:
        await sqlite.close()


@pytest.mark.asyncio
async def test_sqlite_store_requires_open(tmp_path: Path) -> None:
    store = SqliteStore(tmp_path / "offline.db")
    with pytest.raises(StoreError):
        await store.get_all(Partition.PENDING_ACTIONS)


@pytest.mark.asyncio
async def test_sqlite_store_open_failure_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    store = SqliteStore(blocker / "offline.db")

    with pytest.raises(StoreError):
        await store.open()


@pytest.mark.asyncio
async def test_degradable_store_degrades_once_on_write_failure() -> None:
    primary = FailingStore()
    store = DegradableStore(primary)
    reasons: list[StoreError] = []
    store.on_degraded(reasons.append)
    await store.open()

    await store.put(Partition.PENDING_ACTIONS, _action("a1", 100))
    primary.failing = True
    await store.put(Partition.PENDING_ACTIONS, _action("a2", 200))
    await store.put(Partition.PENDING_ACTIONS, _action("a3", 300))

    assert store.degraded
    assert len(reasons) == 1
    assert store.degraded_reason == "quota exceeded"
    records = await store.get_all(Partition.PENDING_ACTIONS)
    assert [r["id"] for r in records] == ["a1", "a2", "a3"]


@pytest.mark.asyncio
async def test_degradable_store_open_failure_runs_in_memory() -> None:
    store = DegradableStore(FailingStore(fail_open=True))
    await store.open()

    assert store.degraded
    await store.put(Partition.KEY_VALUE, {"key": "profile", "data": 1})
    assert await store.get(Partition.KEY_VALUE, "profile") == {"key": "profile", "data": 1}


@pytest.mark.asyncio
async def test_degradable_store_malformed_calls_do_not_degrade() -> None:
    store = DegradableStore(MemoryStore())
    await store.open()

    with pytest.raises(StoreError):
        await store.put(Partition.PENDING_ACTIONS, {"kind": "rating"})
    with pytest.raises(StoreError):
        await store.query_by_index(Partition.PENDING_ACTIONS, "frequency")
    with pytest.raises(StoreError):
        await store.delete("bogus", "k")  # type: ignore[arg-type]
    with pytest.raises(StoreError):
        await store.get("bogus", "k")  # type: ignore[arg-type]
    with pytest.raises(StoreError):
        await store.get_all("bogus")  # type: ignore[arg-type]

    assert not store.degraded


@pytest.mark.asyncio
async def test_degradable_store_over_sqlite_rejects_unknown_partition(tmp_path: Path) -> None:
    store = DegradableStore(SqliteStore(tmp_path / "offline.db"))
    await store.open()
    try:
        with pytest.raises(StoreError):
            await store.delete("bogus", "k")  # type: ignore[arg-type]

        assert not store.degraded
        await store.put(Partition.KEY_VALUE, {"key": "profile", "data": 1})
        assert await store.get(Partition.KEY_VALUE, "profile") == {"key": "profile", "data": 1}
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_degradable_store_shadow_seeded_from_primary() -> None:
    primary = FailingStore()
    await primary.put(Partition.PLACES_CACHE, _place("home", 4, 100))
    store = DegradableStore(primary)
    await store.open()

    primary.failing = True
    await store.put(Partition.PLACES_CACHE, _place("work", 1, 200))

    assert store.degraded
    top = await store.query_by_index(Partition.PLACES_CACHE, "frequency", ALL, descending=True)
    assert [r["id"] for r in top] == ["home", "work"]


def test_build_store_picks_backend(tmp_path: Path) -> None:
    persistent = build_store(RideSyncConfig(db_path=str(tmp_path / "offline.db")))
    volatile = build_store(RideSyncConfig(db_path=str(tmp_path / "offline.db"), persist_enabled=False))
    default = build_store(RideSyncConfig())

    assert isinstance(persistent._primary, SqliteStore)
    assert isinstance(volatile._primary, MemoryStore)
    assert isinstance(default._primary, MemoryStore)
