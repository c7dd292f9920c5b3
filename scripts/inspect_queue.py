#!/usr/bin/env python3
"""Inspect the offline state persisted by ridesync.

Opens the SQLite store (only the schema is ever created) and prints
pending actions, cached trips/places and stored snapshots, so you can see
what a device will replay on its next sync.

Usage
-----
::

    python scripts/inspect_queue.py offline.db
    RIDESYNC_DB_PATH=offline.db python scripts/inspect_queue.py

Options::

    --json               Output as machine-readable JSON
    --top N              Show only the N most frequent cache entries (default: 10)
    --skip-cache         Do not print the trip/place caches
    --skip-snapshots     Do not print key/value snapshots
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from ridesync import EntityCache, Partition, RideSyncConfig, SqliteStore  # noqa: E402
from ridesync._masking import mask_for_log  # noqa: E402
from ridesync.queue import ActionQueue  # noqa: E402
from ridesync.snapshots import SnapshotStore  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _fmt_ms(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat(timespec="seconds")


async def collect(db_path: str, *, top: int, skip_cache: bool, skip_snapshots: bool) -> dict[str, Any]:
    store = SqliteStore(db_path)
    await store.open()
    try:
        queue = ActionQueue(store)
        await queue.load()
        result: dict[str, Any] = {
            "db_path": db_path,
            "pending_actions": [a.to_record() for a in queue.list()],
        }

        if not skip_cache:
            for name, partition in (("trips", Partition.TRIPS_CACHE), ("places", Partition.PLACES_CACHE)):
                cache = EntityCache(store, partition)
                result[name] = [e.to_record() for e in await cache.top_by_frequency(top)]

        if not skip_snapshots:
            snapshots = SnapshotStore(store)
            await snapshots.load()
            result["snapshots"] = {key: snapshots.get(key) for key in snapshots.keys()}
    finally:
        await store.close()
    return result


def render(result: dict[str, Any]) -> str:
    out: list[str] = [_section(f"ridesync store {result['db_path']}")]

    actions = result["pending_actions"]
    out.append(_section(f"PENDING ACTIONS ({len(actions)})"))
    for action in actions:
        out.append(
            f"  {action['id']}  kind={action['kind']}  attempts={action['attempts']}/{action['maxAttempts']}"
            f"  enqueued={_fmt_ms(action['enqueuedAt'])}  last_attempt={_fmt_ms(action['lastAttemptAt'])}"
        )
        out.append(f"    payload: {json.dumps(mask_for_log(action['payload']), ensure_ascii=False)}")

    for name in ("trips", "places"):
        if name not in result:
            continue
        out.append(_section(f"{name.upper()} CACHE (top {len(result[name])})"))
        for entity in result[name]:
            out.append(f"  {entity['id']}  frequency={entity['frequency']}  last_used={_fmt_ms(entity['lastUsedAt'])}")

    if "snapshots" in result:
        out.append(_section("SNAPSHOTS"))
        for key, value in result["snapshots"].items():
            rendered = json.dumps(mask_for_log(value), ensure_ascii=False, default=str)
            out.append(f"  {key}: {rendered[:200]}")

    return "\n".join(out)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect ridesync offline state stored in SQLite.")
    parser.add_argument("db_path", nargs="?", help="SQLite file (default: RIDESYNC_DB_PATH)")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--top", type=int, default=10, help="Cache entries to show per partition")
    parser.add_argument("--skip-cache", action="store_true", help="Do not print the trip/place caches")
    parser.add_argument("--skip-snapshots", action="store_true", help="Do not print key/value snapshots")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    db_path = args.db_path or RideSyncConfig.from_env().db_path
    if not db_path:
        parser.error("no database given (pass a path or set RIDESYNC_DB_PATH)")
    if not Path(db_path).is_file():
        parser.error(f"{db_path} does not exist")

    result = await collect(db_path, top=args.top, skip_cache=args.skip_cache, skip_snapshots=args.skip_snapshots)

    if args.json_mode:
        print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
    else:
        print(render(result))


if __name__ == "__main__":
    asyncio.run(main())
