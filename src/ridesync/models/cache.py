"""Cached trip/place entity model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, model_validator

from ridesync.models._base import RecordModel, now_ms


class CachedEntity(RecordModel):
    """A trip or place remembered for repeat bookings.

    ``frequency`` counts how many times the entity was recorded; entities
    used at least twice are treated as favorites and survive stale
    eviction regardless of age.
    """

    id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    frequency: int = Field(default=1, ge=1)
    last_used_at: int = Field(default_factory=now_ms)
    first_cached_at: int | None = None

    @model_validator(mode="after")
    def _default_first_cached_at(self) -> CachedEntity:
        if self.first_cached_at is None:
            object.__setattr__(self, "first_cached_at", self.last_used_at)
        return self

    @property
    def is_frequent(self) -> bool:
        return self.frequency >= 2

    def touched(self, payload: dict[str, Any], at_ms: int) -> CachedEntity:
        """Copy after one more use: frequency bumped, payload and timestamp refreshed."""
        return self.model_copy(
            update={
                "payload": dict(payload),
                "frequency": self.frequency + 1,
                "last_used_at": at_ms,
            }
        )
