"""Per-kind action handlers and the registry the coordinator dispatches through.

A handler is an async callable ``(payload) -> bool | None``.  Returning
``False`` or raising signals a failed dispatch; any other return value is
a success.  Each handler performs one idempotent remote write, so the
at-least-once delivery of the queue is safe to repeat.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from typing import Any

from ridesync._transport import Transport
from ridesync.exceptions import UnknownActionKindError
from ridesync.models.action import ActionKind

_logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[bool | None]]

#: ``kind -> (HTTP method, endpoint)`` for the default remote writes.
ENDPOINTS: dict[ActionKind, tuple[str, str]] = {
    ActionKind.TRIP_REQUEST: ("POST", "/api/trips/request"),
    ActionKind.PAYMENT: ("POST", "/api/payments/process"),
    ActionKind.RATING: ("POST", "/api/ratings/submit"),
    ActionKind.PROFILE_UPDATE: ("PUT", "/api/profile/update"),
    ActionKind.LOCATION_UPDATE: ("POST", "/api/location/update"),
}


class HandlerRegistry:
    """Binding of action kinds to handlers, fixed at startup."""

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        for kind, handler in (handlers or {}).items():
            self.register(kind, handler)

    def register(self, kind: str, handler: Handler, *, replace: bool = False) -> None:
        key = str(kind)
        if key in self._handlers and not replace:
            raise ValueError(f"Handler for {key!r} already registered")
        self._handlers[key] = handler

    def resolve(self, kind: str) -> Handler:
        try:
            return self._handlers[str(kind)]
        except KeyError:
            raise UnknownActionKindError(str(kind)) from None

    def __contains__(self, kind: object) -> bool:
        return str(kind) in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def missing(self) -> list[str]:
        """Built-in kinds without a handler (useful as a startup sanity check)."""
        return [kind.value for kind in ActionKind if kind.value not in self._handlers]


async def send_action(transport: Transport, kind: ActionKind, payload: dict[str, Any]) -> bool:
    """Perform the remote write for *kind*; raises ``HandlerError`` on failure."""
    method, endpoint = ENDPOINTS[kind]
    await transport.send_json(method, endpoint, payload)
    _logger.debug("%s delivered via %s %s", kind, method, endpoint)
    return True


def build_http_handlers(transport: Transport) -> HandlerRegistry:
    """Registry with one HTTP handler per built-in :class:`ActionKind`."""
    registry = HandlerRegistry()
    for kind in ENDPOINTS:
        registry.register(kind, functools.partial(send_action, transport, kind))
    return registry
