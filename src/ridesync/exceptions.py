"""Custom exception hierarchy for ridesync."""

from __future__ import annotations


class RideSyncError(Exception):
    """Base exception for all ridesync errors."""


class RideSyncConfigError(RideSyncError):
    """Invalid or missing configuration."""


class StoreError(RideSyncError):
    """Persistence operation failed (storage unavailable, quota exceeded, ...)."""

    def __init__(self, message: str, *, partition: str = "") -> None:
        self.partition = partition
        super().__init__(message)


class HandlerError(RideSyncError):
    """Remote dispatch of a pending action failed.

    Recoverable: the coordinator counts it as a failed attempt and retries
    the action on a later drain until ``max_attempts`` is reached.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class HandlerTimeoutError(HandlerError):
    """Handler did not complete within the configured per-handler timeout."""


class UnknownActionKindError(RideSyncError):
    """No handler is registered for an action kind.

    Actions of an unregistered kind are dropped permanently rather than
    retried.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"No handler registered for action kind {kind!r}")
