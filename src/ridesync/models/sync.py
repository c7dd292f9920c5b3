"""Sync results, status and event payloads exposed to the UI layer."""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class SyncEvent(enum.StrEnum):
    """Events the :class:`~ridesync.manager.OfflineManager` emits."""

    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    CONNECTIVITY_CHANGED = "connectivity_changed"
    ACTION_DROPPED = "action_dropped"
    STORE_DEGRADED = "store_degraded"


class SyncSummary(BaseModel):
    """Outcome of one drain pass.

    ``ran`` is ``False`` when the drain was a no-op because another drain
    was already in progress or the network was offline.
    """

    model_config = ConfigDict(frozen=True)

    ran: bool = True
    succeeded: int = 0
    dropped: int = 0
    retried: int = 0
    skipped: int = 0
    dropped_ids: tuple[str, ...] = ()

    @property
    def processed(self) -> int:
        return self.succeeded + self.dropped + self.retried


class NotOnline(BaseModel):
    """Returned by ``force_sync()`` when the network is offline."""

    model_config = ConfigDict(frozen=True)

    message: str = "Cannot synchronize: no network connection"


class OfflineStatus(BaseModel):
    """Display snapshot of the offline layer."""

    model_config = ConfigDict(frozen=True)

    pending_count: int
    is_online: bool
    last_sync_timestamp: int | None = None
    store_degraded: bool = False


class ConnectivityChange(BaseModel):
    """A committed connectivity transition."""

    model_config = ConfigDict(frozen=True)

    online: bool
    changed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
