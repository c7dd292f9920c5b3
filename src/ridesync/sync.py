"""Drain the pending-action queue against the registered handlers.

One drain pass:

1. returns immediately if another drain is running or the device is offline
   (the ``_draining`` flag is the only mutual exclusion needed on a single
   event loop);
2. snapshots the queue, so actions enqueued mid-drain wait for the next pass;
3. dispatches each action in FIFO order, removing it on success and
   recording a failed attempt otherwise (dropping it once exhausted);
4. waits a fixed delay between dispatches;
5. returns a :class:`~ridesync.models.sync.SyncSummary`.

Handler failures never escape a drain: exceptions, ``False`` results and
timeouts are all converted into retry/drop decisions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal

from ridesync._constants import HANDLER_TIMEOUT, INTER_ACTION_DELAY
from ridesync._masking import mask_for_log
from ridesync.exceptions import HandlerTimeoutError, StoreError, UnknownActionKindError
from ridesync.handlers import Handler, HandlerRegistry
from ridesync.models._base import now_ms
from ridesync.models.action import MarkFailedOutcome, PendingAction
from ridesync.models.sync import SyncSummary
from ridesync.network import NetworkMonitor
from ridesync.queue import ActionQueue

_logger = logging.getLogger(__name__)

_Outcome = Literal["succeeded", "retried", "dropped"]


class SyncCoordinator:
    """Single-flight drainer for an :class:`~ridesync.queue.ActionQueue`.

    Parameters
    ----------
    queue
        Queue to drain.
    network
        Connectivity source; drains do not start while offline and stop
        early when the device goes offline mid-pass.
    handlers
        Registry (or plain mapping) of ``kind -> handler``.
    inter_action_delay
        Seconds between two dispatches.
    handler_timeout
        Seconds a single handler may run before the attempt counts as
        failed.  ``0`` disables the timeout.
    retry_backoff_base
        ``0`` retries every failed action on every drain.  A positive value
        skips an action that failed ``n`` times until
        ``base * 2 ** (n - 1)`` seconds after its last failure.
    clock
        Epoch-milliseconds clock.
    sleep
        Awaitable sleep used for the inter-action delay (injectable for tests).
    on_dropped
        Called with each action dropped during a drain.
    """

    def __init__(
        self,
        queue: ActionQueue,
        network: NetworkMonitor,
        handlers: HandlerRegistry | Mapping[str, Handler],
        *,
        inter_action_delay: float = INTER_ACTION_DELAY,
        handler_timeout: float = HANDLER_TIMEOUT,
        retry_backoff_base: float = 0.0,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_dropped: Callable[[PendingAction], None] | None = None,
    ) -> None:
        self._queue = queue
        self._network = network
        self._handlers = handlers if isinstance(handlers, HandlerRegistry) else HandlerRegistry(handlers)
        self._inter_action_delay = inter_action_delay
        self._handler_timeout = handler_timeout
        self._retry_backoff_base = retry_backoff_base
        self._clock = clock
        self._sleep = sleep
        self._on_dropped = on_dropped
        self._draining = False

    @property
    def in_progress(self) -> bool:
        return self._draining

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    async def drain(self) -> SyncSummary:
        """Run one drain pass (or return ``SyncSummary(ran=False)`` when guarded)."""
        if self._draining:
            _logger.debug("Drain already in progress; skipping")
            return SyncSummary(ran=False)
        if not self._network.is_online:
            _logger.debug("Offline; skipping drain")
            return SyncSummary(ran=False)

        self._draining = True
        try:
            return await self._drain_snapshot(self._queue.list())
        finally:
            self._draining = False

    async def _drain_snapshot(self, snapshot: list[PendingAction]) -> SyncSummary:
        succeeded = retried = dropped = skipped = 0
        dropped_ids: list[str] = []
        dispatched = 0

        for index, action in enumerate(snapshot):
            if not self._network.is_online:
                _logger.info("Went offline mid-drain; %d action(s) left for the next pass", len(snapshot) - index)
                break
            if action.id not in self._queue:
                continue
            if not self._is_due(action):
                skipped += 1
                continue

            if dispatched and self._inter_action_delay > 0:
                await self._sleep(self._inter_action_delay)
            dispatched += 1

            outcome = await self._dispatch(action)
            if outcome == "succeeded":
                succeeded += 1
            elif outcome == "retried":
                retried += 1
            else:
                dropped += 1
                dropped_ids.append(action.id)
                self._notify_dropped(action)

        summary = SyncSummary(
            succeeded=succeeded,
            dropped=dropped,
            retried=retried,
            skipped=skipped,
            dropped_ids=tuple(dropped_ids),
        )
        if summary.processed or skipped:
            _logger.info(
                "Drain finished: %d succeeded, %d retried, %d dropped, %d skipped",
                succeeded,
                retried,
                dropped,
                skipped,
            )
        return summary

    def _is_due(self, action: PendingAction) -> bool:
        if self._retry_backoff_base <= 0 or action.attempts == 0 or action.last_attempt_at is None:
            return True
        wait_ms = self._retry_backoff_base * 1000 * (2 ** (action.attempts - 1))
        return self._clock() >= action.last_attempt_at + wait_ms

    async def _dispatch(self, action: PendingAction) -> _Outcome:
        try:
            handler = self._handlers.resolve(action.kind)
        except UnknownActionKindError:
            _logger.warning("No handler for action kind %r; dropping %s", action.kind, action.id)
            await self._remove(action)
            return "dropped"

        _logger.debug(
            "Dispatching %s (%s) attempt %d/%d payload=%s",
            action.id,
            action.kind,
            action.attempts + 1,
            action.max_attempts,
            mask_for_log(action.payload),
        )
        try:
            result = await self._invoke(handler, action)
            ok = result is not False
            if not ok:
                _logger.debug("Handler for %s reported failure", action.id)
        except Exception as exc:
            _logger.info("Dispatch of %s (%s) failed: %s", action.id, action.kind, exc)
            _logger.debug("Dispatch failure detail for %s", action.id, exc_info=True)
            ok = False

        if ok:
            await self._remove(action)
            return "succeeded"
        return await self._record_failure(action)

    async def _invoke(self, handler: Handler, action: PendingAction) -> bool | None:
        payload = dict(action.payload)
        if self._handler_timeout <= 0:
            return await handler(payload)
        try:
            return await asyncio.wait_for(handler(payload), self._handler_timeout)
        except TimeoutError as exc:
            raise HandlerTimeoutError(
                f"Handler for {action.kind} timed out after {self._handler_timeout:.1f}s"
            ) from exc

    async def _remove(self, action: PendingAction) -> None:
        try:
            await self._queue.remove(action.id)
        except StoreError:
            # The action stays queued and is delivered again next pass.
            _logger.error("Could not remove %s from the store", action.id, exc_info=True)

    async def _record_failure(self, action: PendingAction) -> _Outcome:
        try:
            outcome = await self._queue.mark_failed(action.id)
        except KeyError:
            return "retried"
        except StoreError:
            _logger.error("Could not record failed attempt for %s", action.id, exc_info=True)
            return "retried"
        return "dropped" if outcome is MarkFailedOutcome.DROPPED else "retried"

    def _notify_dropped(self, action: PendingAction) -> None:
        if self._on_dropped is None:
            return
        try:
            self._on_dropped(action)
        except Exception:
            _logger.debug("on_dropped callback failed", exc_info=True)
