"""Base model for persisted ridesync records.

Every record model inherits from :class:`RecordModel` which provides:

* ``alias_generator=to_camel`` so fields persist under camelCase keys
  (``enqueuedAt``, ``lastUsedAt``, ...) and the store indexes can
  address them by the same names.
* ``populate_by_name`` so Python code constructs models with
  snake_case keyword arguments.
* :meth:`RecordModel.to_record` / :meth:`RecordModel.from_record`
  helpers for the store boundary.
"""

from __future__ import annotations

import time
from typing import Any, Self

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class RecordModel(BaseModel):
    """Base for models that round-trip through a :class:`~ridesync.store.PersistentStore`."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict[str, Any]:
        """JSON-compatible dict keyed by camelCase aliases."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Self:
        return cls.model_validate(record)
