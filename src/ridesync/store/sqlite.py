"""SQLite-backed persistent store (async via aiosqlite).

Each partition is one table holding the primary key and the JSON record.
Secondary indexes are SQLite expression indexes over ``json_extract`` of the
record, so index scans stay ordered without duplicating columns.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from ridesync.exceptions import StoreError
from ridesync.store.base import (
    ALL,
    SCHEMA,
    IndexRange,
    Partition,
    as_partition,
    primary_key_of,
    require_index,
)

_logger = logging.getLogger(__name__)


def _json_path(field: str) -> str:
    return f"$.{field}"


class SqliteStore:
    """Durable :class:`~ridesync.store.base.PersistentStore` on a SQLite file.

    Usage::

        store = SqliteStore("offline.db")
        await store.open()
        await store.put(Partition.PENDING_ACTIONS, action.to_record())
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._db: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    async def open(self) -> None:
        if self._db is not None:
            return
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(self._path)
        except (OSError, aiosqlite.Error) as exc:
            raise StoreError(f"Cannot open store at {self._path}: {exc}") from exc

        try:
            for partition, schema in SCHEMA.items():
                await db.execute(
                    f'CREATE TABLE IF NOT EXISTS "{partition}" (pk TEXT PRIMARY KEY, record TEXT NOT NULL)'
                )
                for index_name in schema.indexes:
                    await db.execute(
                        f'CREATE INDEX IF NOT EXISTS "idx_{partition}_{index_name}" '
                        f"ON \"{partition}\"(json_extract(record, '{_json_path(index_name)}'))"
                    )
            await db.commit()
        except aiosqlite.Error as exc:
            await db.close()
            raise StoreError(f"Cannot initialize schema at {self._path}: {exc}") from exc

        self._db = db
        _logger.debug("Opened SQLite store at %s", self._path)

    async def close(self) -> None:
        db = self._db
        self._db = None
        if db is not None:
            await db.close()

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError("Store not opened. Call 'await store.open()' first.")
        return self._db

    async def put(self, partition: Partition, record: dict[str, Any]) -> None:
        partition = as_partition(partition)
        key = primary_key_of(partition, record)
        db = self._require_db()
        try:
            encoded = json.dumps(record, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Record {key!r} is not JSON serializable: {exc}", partition=partition) from exc
        try:
            await db.execute(
                f'INSERT INTO "{partition}" (pk, record) VALUES (?, ?) '
                "ON CONFLICT(pk) DO UPDATE SET record = excluded.record",
                (key, encoded),
            )
            await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"put {partition}/{key} failed: {exc}", partition=partition) from exc

    async def delete(self, partition: Partition, key: str) -> None:
        partition = as_partition(partition)
        db = self._require_db()
        try:
            await db.execute(f'DELETE FROM "{partition}" WHERE pk = ?', (key,))
            await db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"delete {partition}/{key} failed: {exc}", partition=partition) from exc

    async def get(self, partition: Partition, key: str) -> dict[str, Any] | None:
        partition = as_partition(partition)
        rows = await self._fetch(partition, f'SELECT record FROM "{partition}" WHERE pk = ?', (key,))
        return rows[0] if rows else None

    async def get_all(self, partition: Partition) -> list[dict[str, Any]]:
        partition = as_partition(partition)
        return await self._fetch(partition, f'SELECT record FROM "{partition}" ORDER BY rowid', ())

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

        expr = f"json_extract(record, '{_json_path(index_name)}')"
        clauses = [f"{expr} IS NOT NULL"]
        params: list[Any] = []
        if key_range.lower is not None:
            clauses.append(f"{expr} {'>' if key_range.lower_open else '>='} ?")
            params.append(key_range.lower)
        if key_range.upper is not None:
            clauses.append(f"{expr} {'<' if key_range.upper_open else '<='} ?")
            params.append(key_range.upper)

        # Ties keep insertion order in both directions, matching MemoryStore.
        sql = (
            f'SELECT record FROM "{partition}" WHERE {" AND ".join(clauses)} '
            f"ORDER BY {expr} {'DESC' if descending else 'ASC'}, rowid ASC"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(limit, 0))
        return await self._fetch(partition, sql, tuple(params))

    async def _fetch(self, partition: Partition, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        db = self._require_db()
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StoreError(f"read from {partition} failed: {exc}", partition=partition) from exc

        records: list[dict[str, Any]] = []
        for (raw,) in rows:
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                _logger.warning("Skipping corrupt record in %s", partition)
                continue
            if isinstance(record, dict):
                records.append(record)
        return records
