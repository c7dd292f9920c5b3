"""Connectivity monitoring.

:class:`NetworkMonitor` is the single source of truth for whether the
device is online.  Platform adapters feed raw observations into
:meth:`NetworkMonitor.report`; the monitor debounces them and notifies
subscribers only on committed transitions.  It never retries anything
itself.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

import aiohttp

from ridesync._constants import NETWORK_DEBOUNCE, REACHABILITY_INTERVAL
from ridesync.models.sync import ConnectivityChange

_logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[ConnectivityChange], None]


class Subscription:
    """Handle returned by :meth:`NetworkMonitor.on_change`."""

    def __init__(self, remove: Callable[[], None]) -> None:
        self._remove: Callable[[], None] | None = remove

    @property
    def active(self) -> bool:
        return self._remove is not None

    def unsubscribe(self) -> None:
        remove = self._remove
        self._remove = None
        if remove is not None:
            remove()


class NetworkMonitor:
    """Debounced connectivity state with a callback stream.

    Observations reported within ``debounce`` seconds of each other
    collapse into the last one.  A debounce of ``0`` commits immediately.
    """

    def __init__(self, *, initial_online: bool = True, debounce: float = NETWORK_DEBOUNCE) -> None:
        self._online = initial_online
        self._debounce = debounce
        self._pending: bool | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._callbacks: list[ConnectivityCallback] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def on_change(self, callback: ConnectivityCallback) -> Subscription:
        self._callbacks.append(callback)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._callbacks.remove(callback)

        return Subscription(_remove)

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None

    def report(self, online: bool) -> None:
        """Feed a raw connectivity observation (must run on the event loop)."""
        if self._debounce <= 0:
            self._commit(online)
            return
        self._pending = online
        if self._timer is not None:
            self._timer.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._flush)

    def report_threadsafe(self, online: bool) -> None:
        """Feed an observation from a foreign thread (OS callback, watcher thread)."""
        loop = self._loop
        if loop is None:
            raise RuntimeError("NetworkMonitor not started. Call 'await monitor.start()' first.")
        loop.call_soon_threadsafe(self.report, online)

    def _flush(self) -> None:
        self._timer = None
        pending = self._pending
        self._pending = None
        if pending is not None:
            self._commit(pending)

    def _commit(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        _logger.info("Connectivity changed: %s", "online" if online else "offline")
        change = ConnectivityChange(online=online)
        for callback in list(self._callbacks):
            try:
                callback(change)
            except Exception:
                _logger.debug("Connectivity callback failed", exc_info=True)


class ManualNetworkMonitor(NetworkMonitor):
    """Monitor driven explicitly by the host application.

    Adapters for OS-level connectivity APIs call :meth:`set_online`; tests
    use it to script transitions.
    """

    def set_online(self, online: bool) -> None:
        self.report(online)


class ReachabilityMonitor(NetworkMonitor):
    """Monitor that polls a reachability URL with aiohttp.

    Any HTTP response counts as online; connection errors and timeouts
    count as offline.

    Usage::

        monitor = ReachabilityMonitor("https://api.example.com/health")
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        url: str,
        *,
        interval: float = REACHABILITY_INTERVAL,
        timeout: float = 5.0,
        session: aiohttp.ClientSession | None = None,
        initial_online: bool = True,
        debounce: float = NETWORK_DEBOUNCE,
    ) -> None:
        super().__init__(initial_online=initial_online, debounce=debounce)
        self._url = url
        self._interval = interval
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._external_session = session is not None
        self._http_session = session
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        await super().start()
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(timeout=self._timeout)
        if self._task is None:
            self._task = asyncio.create_task(self._poll_loop(), name="ridesync-reachability")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        await super().stop()

    async def probe(self) -> bool:
        """Run one reachability check and report the result."""
        session = self._http_session
        if session is None:
            raise RuntimeError("ReachabilityMonitor not started. Call 'await monitor.start()' first.")
        try:
            async with session.head(self._url, timeout=self._timeout, allow_redirects=True) as resp:
                _logger.debug("Reachability probe %s -> HTTP %d", self._url, resp.status)
                online = True
        except (aiohttp.ClientError, TimeoutError) as exc:
            _logger.debug("Reachability probe %s failed: %s", self._url, exc)
            online = False
        self.report(online)
        return online

    async def _poll_loop(self) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(self._interval)

    def __repr__(self) -> str:
        return f"ReachabilityMonitor(url={self._url!r}, online={self.is_online})"
