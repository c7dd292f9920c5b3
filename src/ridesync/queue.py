"""In-memory mirror of the persisted pending-action queue.

The persistent store is authoritative: the queue is rehydrated from it on
startup and every mutation is written to the store before memory changes,
so a crash between the two steps can only leave the store ahead of memory,
never behind it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from ridesync._constants import DEFAULT_MAX_ATTEMPTS
from ridesync.models._base import now_ms
from ridesync.models.action import MarkFailedOutcome, PendingAction, generate_action_id
from ridesync.store.base import Partition, PersistentStore

_logger = logging.getLogger(__name__)


class ActionQueue:
    """FIFO collection of :class:`PendingAction` records.

    Only the enqueue path and the sync coordinator mutate the queue.
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        clock: Callable[[], int] = now_ms,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_max_attempts = default_max_attempts
        self._actions: dict[str, PendingAction] = {}

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions

    async def load(self) -> int:
        """Rehydrate from the store, replacing any in-memory state.

        Records that fail validation are skipped with a warning.  Returns
        the number of actions loaded.
        """
        records = await self._store.get_all(Partition.PENDING_ACTIONS)
        loaded: list[PendingAction] = []
        for record in records:
            try:
                loaded.append(PendingAction.from_record(record))
            except ValueError:
                _logger.warning("Ignoring invalid pending action record id=%s", record.get("id"), exc_info=True)
        loaded.sort(key=lambda a: a.enqueued_at)
        self._actions = {a.id: a for a in loaded}
        _logger.debug("Loaded %d pending action(s)", len(self._actions))
        return len(self._actions)

    async def enqueue(
        self,
        kind: str,
        payload: dict[str, Any] | None = None,
        max_attempts: int | None = None,
    ) -> str:
        """Persist a new action and append it; returns its id once stored."""
        if max_attempts is None:
            max_attempts = self._default_max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        timestamp = self._clock()
        action = PendingAction(
            id=generate_action_id(str(kind), timestamp),
            kind=str(kind),
            payload=dict(payload or {}),
            enqueued_at=timestamp,
            max_attempts=max_attempts,
        )
        await self._store.put(Partition.PENDING_ACTIONS, action.to_record())
        self._actions[action.id] = action
        _logger.debug("Enqueued %s (%s), %d pending", action.id, action.kind, len(self._actions))
        return action.id

    async def remove(self, action_id: str) -> None:
        """Delete an action from the store and memory; unknown ids are a no-op."""
        await self._store.delete(Partition.PENDING_ACTIONS, action_id)
        self._actions.pop(action_id, None)

    async def mark_failed(self, action_id: str) -> MarkFailedOutcome:
        """Record one failed dispatch.

        Raises
        ------
        KeyError
            If *action_id* is not queued.
        """
        action = self._actions.get(action_id)
        if action is None:
            raise KeyError(action_id)

        updated = action.with_failed_attempt(self._clock())
        if updated.exhausted:
            await self.remove(action_id)
            _logger.warning(
                "Action %s (%s) dropped after %d attempt(s)",
                action_id,
                action.kind,
                updated.attempts,
            )
            return MarkFailedOutcome.DROPPED

        await self._store.put(Partition.PENDING_ACTIONS, updated.to_record())
        self._actions[action_id] = updated
        return MarkFailedOutcome.RETRY

    def get(self, action_id: str) -> PendingAction | None:
        return self._actions.get(action_id)

    def list(self) -> list[PendingAction]:
        """Snapshot of pending actions in FIFO (``enqueued_at`` ascending) order."""
        return sorted(self._actions.values(), key=lambda a: a.enqueued_at)
