"""Offline manager facade.

Wires the persistent store, action queue, sync coordinator, network monitor
and entity caches together, and owns every timer that triggers a drain.
The UI layer only needs :meth:`OfflineManager.submit`,
:meth:`OfflineManager.status` and :meth:`OfflineManager.force_sync`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import aiohttp

from ridesync._constants import LAST_SYNC_KEY
from ridesync._transport import JsonTransport
from ridesync.cache import EntityCache
from ridesync.config import RideSyncConfig
from ridesync.exceptions import RideSyncError, StoreError
from ridesync.handlers import Handler, HandlerRegistry, build_http_handlers
from ridesync.models._base import now_ms
from ridesync.models.action import PendingAction
from ridesync.models.sync import (
    ConnectivityChange,
    NotOnline,
    OfflineStatus,
    SyncEvent,
    SyncSummary,
)
from ridesync.network import NetworkMonitor, ReachabilityMonitor, Subscription
from ridesync.queue import ActionQueue
from ridesync.snapshots import SnapshotStore
from ridesync.store import DegradableStore, PersistentStore, build_store
from ridesync.store.base import Partition
from ridesync.sync import SyncCoordinator

_logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], None]


class OfflineManager:
    """Facade over the offline synchronization core.

    Construct one instance at application startup and pass it to the
    components that need it.

    Usage::

        async with OfflineManager(RideSyncConfig.from_env()) as manager:
            manager.on(SyncEvent.SYNC_COMPLETED, show_toast)
            action_id = await manager.submit(ActionKind.TRIP_REQUEST, {"from": "X", "to": "Y"})
            print(manager.status().pending_count)

    Parameters
    ----------
    config
        Timings, persistence location and API base URL.
    store
        Persistent store.  Defaults to the store described by *config*.
        Any store is wrapped in a :class:`~ridesync.store.DegradableStore`.
    network
        Connectivity monitor.  Defaults to a
        :class:`~ridesync.network.ReachabilityMonitor` on ``config.probe_url``.
    handlers
        ``kind -> handler`` bindings.  Defaults to the HTTP handlers posting
        to ``config.base_url``.
    session
        Optional aiohttp session shared with the host application.
    clock
        Epoch-milliseconds clock.
    sleep
        Sleep used for the coordinator's inter-action delay.
    """

    def __init__(
        self,
        config: RideSyncConfig | None = None,
        *,
        store: PersistentStore | None = None,
        network: NetworkMonitor | None = None,
        handlers: HandlerRegistry | Mapping[str, Handler] | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or RideSyncConfig()
        if store is None:
            self._store = build_store(self._config)
        elif isinstance(store, DegradableStore):
            self._store = store
        else:
            self._store = DegradableStore(store)
        self._store.on_degraded(self._on_store_degraded)

        self._network = network or ReachabilityMonitor(
            self._config.probe_url,
            interval=self._config.reachability_interval,
            debounce=self._config.network_debounce,
            session=session,
        )
        self._handlers = handlers
        self._external_session = session is not None
        self._http_session = session
        self._clock = clock
        self._sleep = sleep

        self._queue = ActionQueue(
            self._store,
            clock=clock,
            default_max_attempts=self._config.default_max_attempts,
        )
        self._trips = EntityCache(self._store, Partition.TRIPS_CACHE, clock=clock)
        self._places = EntityCache(self._store, Partition.PLACES_CACHE, clock=clock)
        self._snapshots = SnapshotStore(self._store)
        self._coordinator: SyncCoordinator | None = None

        self._listeners: dict[SyncEvent, list[EventCallback]] = {event: [] for event in SyncEvent}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscription: Subscription | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._background: list[asyncio.Task[None]] = []
        self._drain_tasks: set[asyncio.Task[SyncSummary]] = set()
        self._last_sync: int | None = None
        self._rerun_requested = False
        self._started = False

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> OfflineManager:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Open the store, rehydrate state and start the background timers."""
        if self._started:
            return
        self._loop = asyncio.get_running_loop()

        await self._store.open()
        await self._queue.load()
        await self._snapshots.load()
        last_sync = self._snapshots.get(LAST_SYNC_KEY)
        self._last_sync = int(last_sync) if isinstance(last_sync, (int, float)) else None

        self._coordinator = SyncCoordinator(
            self._queue,
            self._network,
            self._build_handlers(),
            inter_action_delay=self._config.inter_action_delay,
            handler_timeout=self._config.handler_timeout,
            retry_backoff_base=self._config.retry_backoff_base,
            clock=self._clock,
            sleep=self._sleep,
            on_dropped=self._on_action_dropped,
        )

        await self._network.start()
        self._subscription = self._network.on_change(self._on_connectivity_change)

        if self._config.sync_interval > 0:
            self._background.append(asyncio.create_task(self._periodic_sync_loop(), name="ridesync-periodic-sync"))
        if self._config.cache_cleanup_interval > 0:
            self._background.append(asyncio.create_task(self._cache_cleanup_loop(), name="ridesync-cache-cleanup"))

        self._started = True
        _logger.info(
            "Offline manager started: %d pending action(s), %s",
            len(self._queue),
            "online" if self._network.is_online else "offline",
        )
        if len(self._queue) and self._network.is_online:
            self._schedule_drain(self._config.enqueue_debounce)

    async def close(self) -> None:
        """Cancel timers and background work, then release the store.

        An interrupted drain leaves its current action queued; it is
        delivered again after the next start.
        """
        if not self._started:
            return
        self._started = False

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

        tasks: list[asyncio.Task[Any]] = [*self._background, *self._drain_tasks]
        self._background.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self._network.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        await self._store.close()

    def _build_handlers(self) -> HandlerRegistry | Mapping[str, Handler]:
        if self._handlers is not None:
            return self._handlers
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        transport = JsonTransport(
            self._config.base_url,
            self._http_session,
            timeout=self._config.request_timeout,
        )
        return build_http_handlers(transport)

    def _require_started(self) -> SyncCoordinator:
        if not self._started or self._coordinator is None:
            raise RideSyncError("OfflineManager not started. Use 'async with OfflineManager(...) as manager:'")
        return self._coordinator

    # ------------------------------------------------------------------
    # UI-facing API
    # ------------------------------------------------------------------

    async def submit(
        self,
        kind: str,
        payload: dict[str, Any] | None = None,
        *,
        max_attempts: int | None = None,
    ) -> str:
        """Queue an action and schedule a sync attempt; returns the action id.

        The action is persisted before this returns.  Delivery happens in
        the background.
        """
        self._require_started()
        action_id = await self._queue.enqueue(kind, payload, max_attempts)
        if self._network.is_online:
            self._schedule_drain(self._config.enqueue_debounce)
        return action_id

    def status(self) -> OfflineStatus:
        return OfflineStatus(
            pending_count=len(self._queue),
            is_online=self._network.is_online,
            last_sync_timestamp=self._last_sync,
            store_degraded=self._store.degraded,
        )

    async def force_sync(self) -> SyncSummary | NotOnline:
        """Drain now, regardless of the background timer.

        Returns :class:`NotOnline` when offline, and ``SyncSummary(ran=False)``
        when a drain is already running.
        """
        self._require_started()
        if not self._network.is_online:
            result = NotOnline()
            _logger.warning("Sync requested while offline: %s", result.message)
            return result
        return await self._run_drain(skip_if_empty=False)

    def pending_actions(self) -> list[PendingAction]:
        return self._queue.list()

    @property
    def last_sync_timestamp(self) -> int | None:
        return self._last_sync

    @property
    def is_syncing(self) -> bool:
        return self._coordinator is not None and self._coordinator.in_progress

    @property
    def trips(self) -> EntityCache:
        return self._trips

    @property
    def places(self) -> EntityCache:
        return self._places

    @property
    def network(self) -> NetworkMonitor:
        return self._network

    @property
    def coordinator(self) -> SyncCoordinator:
        return self._require_started()

    async def save_snapshot(self, key: str, data: Any) -> None:
        await self._snapshots.save(key, data)

    def get_snapshot(self, key: str, default: Any = None) -> Any:
        return self._snapshots.get(key, default)

    async def cleanup_caches(self, max_age_days: float | None = None) -> int:
        """Evict stale single-use trips and places; returns the number removed."""
        if max_age_days is None:
            max_age_days = self._config.cache_max_age_days
        removed = await self._trips.evict_stale(max_age_days)
        removed += await self._places.evict_stale(max_age_days)
        return removed

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: SyncEvent | str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to *event*; returns a function that unsubscribes.

        Payloads: ``sync_started`` -> pending count, ``sync_completed`` ->
        :class:`SyncSummary`, ``connectivity_changed`` ->
        :class:`ConnectivityChange`, ``action_dropped`` ->
        :class:`PendingAction`, ``store_degraded`` -> :class:`StoreError`.
        """
        listeners = self._listeners[SyncEvent(event)]
        listeners.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                listeners.remove(callback)

        return _unsubscribe

    def _emit(self, event: SyncEvent, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception:
                _logger.debug("%s listener failed", event, exc_info=True)

    def _on_store_degraded(self, exc: StoreError) -> None:
        self._emit(SyncEvent.STORE_DEGRADED, exc)

    def _on_action_dropped(self, action: PendingAction) -> None:
        self._emit(SyncEvent.ACTION_DROPPED, action)

    def _on_connectivity_change(self, change: ConnectivityChange) -> None:
        self._emit(SyncEvent.CONNECTIVITY_CHANGED, change)
        if change.online:
            self._spawn_drain()
        elif self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    # ------------------------------------------------------------------
    # Drain scheduling
    # ------------------------------------------------------------------

    def _schedule_drain(self, delay: float) -> None:
        """Drain after *delay* seconds; a newer request replaces a pending one."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if delay <= 0:
            self._spawn_drain()
            return
        loop = self._loop or asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(delay, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._spawn_drain()

    def _spawn_drain(self) -> None:
        if not self._started:
            return
        task = asyncio.create_task(self._run_drain(), name="ridesync-drain")
        self._drain_tasks.add(task)
        task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task[SyncSummary]) -> None:
        self._drain_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Background drain failed", exc_info=exc)

    async def _run_drain(self, *, skip_if_empty: bool = True) -> SyncSummary:
        """Drain through the coordinator and emit the sync events.

        A trigger arriving while a drain is running is remembered, and one
        more drain follows the running one.  Background triggers with
        nothing queued are no-ops (no events, no ``lastSync`` update).
        """
        coordinator = self._require_started()
        if coordinator.in_progress:
            self._rerun_requested = True
            return SyncSummary(ran=False)
        if not self._network.is_online:
            return SyncSummary(ran=False)
        if skip_if_empty and not len(self._queue):
            return SyncSummary(ran=False)

        self._rerun_requested = False
        self._emit(SyncEvent.SYNC_STARTED, len(self._queue))
        try:
            summary = await coordinator.drain()
            if summary.ran:
                await self._record_sync()
                self._emit(SyncEvent.SYNC_COMPLETED, summary)
        finally:
            if self._rerun_requested:
                self._rerun_requested = False
                if len(self._queue) and self._network.is_online:
                    _logger.debug("Sync requested during a drain; draining again")
                    self._spawn_drain()
        return summary

    async def _record_sync(self) -> None:
        self._last_sync = self._clock()
        await self._snapshots.save(LAST_SYNC_KEY, self._last_sync)

    async def _periodic_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.sync_interval)
            if not len(self._queue) or not self._network.is_online:
                continue
            try:
                await self._run_drain()
            except Exception:
                _logger.warning("Periodic sync failed", exc_info=True)

    async def _cache_cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.cache_cleanup_interval)
            try:
                removed = await self.cleanup_caches()
            except Exception:
                _logger.warning("Cache cleanup failed", exc_info=True)
                continue
            _logger.debug("Cache cleanup removed %d entr%s", removed, "y" if removed == 1 else "ies")
