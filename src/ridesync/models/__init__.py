"""Pydantic models for ridesync records and results."""

from ridesync.models._base import RecordModel, now_ms
from ridesync.models.action import (
    ActionKind,
    MarkFailedOutcome,
    PendingAction,
    generate_action_id,
)
from ridesync.models.cache import CachedEntity
from ridesync.models.sync import (
    ConnectivityChange,
    NotOnline,
    OfflineStatus,
    SyncEvent,
    SyncSummary,
)

__all__ = [
    "ActionKind",
    "CachedEntity",
    "ConnectivityChange",
    "MarkFailedOutcome",
    "NotOnline",
    "OfflineStatus",
    "PendingAction",
    "RecordModel",
    "SyncEvent",
    "SyncSummary",
    "generate_action_id",
    "now_ms",
]
