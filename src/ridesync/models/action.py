"""Pending action models."""

from __future__ import annotations

import enum
import secrets
from typing import Any

from pydantic import Field, field_validator, model_validator

from ridesync._constants import DEFAULT_MAX_ATTEMPTS
from ridesync.models._base import RecordModel, now_ms

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class ActionKind(enum.StrEnum):
    """Kinds of user actions that can be queued for later delivery.

    Each kind must be bound to exactly one handler at startup.
    """

    TRIP_REQUEST = "trip_request"
    PAYMENT = "payment"
    RATING = "rating"
    PROFILE_UPDATE = "profile_update"
    LOCATION_UPDATE = "location_update"


class MarkFailedOutcome(enum.StrEnum):
    """Result of recording a failed dispatch."""

    RETRY = "retry"
    DROPPED = "dropped"


def generate_action_id(kind: str, timestamp_ms: int | None = None) -> str:
    """Build a collision-resistant action id: ``<kind>_<epoch-ms>_<random>``."""
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{kind}_{timestamp_ms}_{suffix}"


class PendingAction(RecordModel):
    """A user-initiated write queued for delivery to the remote service.

    Parameters
    ----------
    id : str
        Unique id generated at enqueue time.
    kind : str
        Action kind, normally an :class:`ActionKind` value.  Kept as a
        plain string so records written by a newer build with extra kinds
        still load (and are dropped as unknown by the coordinator).
    payload : dict
        Kind-specific JSON-serializable payload.
    enqueued_at : int
        Epoch milliseconds at enqueue time.
    attempts : int
        Failed dispatches so far.
    max_attempts : int
        Attempt ceiling fixed at enqueue time.
    last_attempt_at : int or None
        Epoch milliseconds of the last failed dispatch.
    """

    id: str
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: int = Field(default_factory=now_ms)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    last_attempt_at: int | None = None

    @field_validator("id", "kind")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @model_validator(mode="after")
    def _attempts_within_ceiling(self) -> PendingAction:
        if self.attempts > self.max_attempts:
            raise ValueError("attempts must not exceed max_attempts")
        return self

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def with_failed_attempt(self, at_ms: int) -> PendingAction:
        """Copy with ``attempts`` incremented and ``last_attempt_at`` set."""
        return self.model_copy(update={"attempts": self.attempts + 1, "last_attempt_at": at_ms})
