"""ridesync - Async offline action queue and trip/place cache for ride-hailing clients."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ridesync")
except PackageNotFoundError:
    __version__ = "0+local"
from ridesync.cache import EntityCache
from ridesync.config import RideSyncConfig
from ridesync.exceptions import (
    HandlerError,
    HandlerTimeoutError,
    RideSyncConfigError,
    RideSyncError,
    StoreError,
    UnknownActionKindError,
)
from ridesync.handlers import HandlerRegistry, build_http_handlers
from ridesync.manager import OfflineManager
from ridesync.models import (
    ActionKind,
    CachedEntity,
    ConnectivityChange,
    MarkFailedOutcome,
    NotOnline,
    OfflineStatus,
    PendingAction,
    SyncEvent,
    SyncSummary,
)
from ridesync.network import ManualNetworkMonitor, NetworkMonitor, ReachabilityMonitor
from ridesync.queue import ActionQueue
from ridesync.store import DegradableStore, MemoryStore, Partition, PersistentStore, SqliteStore
from ridesync.sync import SyncCoordinator

__all__ = [
    "__version__",
    "ActionKind",
    "ActionQueue",
    "CachedEntity",
    "ConnectivityChange",
    "DegradableStore",
    "EntityCache",
    "HandlerError",
    "HandlerRegistry",
    "HandlerTimeoutError",
    "ManualNetworkMonitor",
    "MarkFailedOutcome",
    "MemoryStore",
    "NetworkMonitor",
    "NotOnline",
    "OfflineManager",
    "OfflineStatus",
    "Partition",
    "PendingAction",
    "PersistentStore",
    "ReachabilityMonitor",
    "RideSyncConfig",
    "RideSyncConfigError",
    "RideSyncError",
    "SqliteStore",
    "StoreError",
    "SyncCoordinator",
    "SyncEvent",
    "SyncSummary",
    "UnknownActionKindError",
    "build_http_handlers",
]
