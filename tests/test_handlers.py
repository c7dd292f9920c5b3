from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import aiohttp
import pytest

from ridesync._transport import JsonTransport
from ridesync.exceptions import HandlerError, UnknownActionKindError
from ridesync.handlers import ENDPOINTS, HandlerRegistry, build_http_handlers
from ridesync.models.action import ActionKind


class FakeTransport:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.error = error

    async def send_json(self, method: str, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.sent.append((method, endpoint, dict(payload)))
        if self.error is not None:
            raise self.error
        return {}


class _FakeResponse:
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class FakeHttpSession:
    def __init__(self, status: int = 200, body: str = "", *, error: Exception | None = None) -> None:
        self.status = status
        self.body = body
        self.error = error
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return _FakeResponse(self.status, self.body)


async def _ok(_payload: dict[str, Any]) -> bool:
    return True


def test_endpoints_cover_every_builtin_kind() -> None:
    assert set(ENDPOINTS) == set(ActionKind)
    assert ENDPOINTS[ActionKind.PROFILE_UPDATE] == ("PUT", "/api/profile/update")
    assert ENDPOINTS[ActionKind.TRIP_REQUEST] == ("POST", "/api/trips/request")


def test_registry_rejects_duplicate_binding() -> None:
    registry = HandlerRegistry({"rating": _ok})
    with pytest.raises(ValueError):
        registry.register(ActionKind.RATING, _ok)

    registry.register(ActionKind.RATING, _ok, replace=True)
    assert len(registry) == 1


def test_registry_resolve_unknown_kind() -> None:
    registry = HandlerRegistry()
    with pytest.raises(UnknownActionKindError) as excinfo:
        registry.resolve("teleport")
    assert excinfo.value.kind == "teleport"


def test_registry_reports_missing_builtin_kinds() -> None:
    registry = HandlerRegistry({"rating": _ok, "payment": _ok})
    assert registry.missing() == ["trip_request", "profile_update", "location_update"]
    assert "rating" in registry
    assert ActionKind.PAYMENT in registry
    assert sorted(registry) == ["payment", "rating"]


@pytest.mark.asyncio
async def test_http_handlers_send_to_kind_endpoint() -> None:
    transport = FakeTransport()
    registry = build_http_handlers(transport)

    assert registry.missing() == []
    result = await registry.resolve("payment")({"amount": 12, "cardToken": "tok"})

    assert result is True
    assert transport.sent == [("POST", "/api/payments/process", {"amount": 12, "cardToken": "tok"})]


@pytest.mark.asyncio
async def test_http_handler_propagates_transport_failure() -> None:
    transport = FakeTransport(error=HandlerError("HTTP 503", status_code=503, endpoint="/api/ratings/submit"))
    registry = build_http_handlers(transport)

    with pytest.raises(HandlerError) as excinfo:
        await registry.resolve(ActionKind.RATING)({"stars": 5})
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_json_transport_posts_json_with_headers() -> None:
    session = FakeHttpSession(200, '{"tripId": "T-1"}')
    transport = JsonTransport("https://api.example.test/", session, headers={"x-app": "rider"})  # type: ignore[arg-type]
    transport.set_header("authorization", "Bearer abc")

    result = await transport.send_json("POST", "/api/trips/request", {"from": "X", "to": "Y"})

    assert result == {"tripId": "T-1"}
    request = session.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://api.example.test/api/trips/request"
    assert json.loads(request["data"]) == {"from": "X", "to": "Y"}
    assert request["headers"]["authorization"] == "Bearer abc"
    assert request["headers"]["x-app"] == "rider"
    assert request["headers"]["content-type"].startswith("application/json")


@pytest.mark.asyncio
async def test_json_transport_tolerates_empty_and_non_json_bodies() -> None:
    assert await JsonTransport("http://x", FakeHttpSession(204, "")).send_json("PUT", "/p", {}) == {}  # type: ignore[arg-type]
    assert await JsonTransport("http://x", FakeHttpSession(200, "OK")).send_json("PUT", "/p", {}) == {}  # type: ignore[arg-type]
    assert await JsonTransport("http://x", FakeHttpSession(200, "[1, 2]")).send_json("PUT", "/p", {}) == {  # type: ignore[arg-type]
        "data": [1, 2]
    }


@pytest.mark.asyncio
async def test_json_transport_non_2xx_raises_handler_error() -> None:
    transport = JsonTransport("http://x", FakeHttpSession(422, "invalid rating"))  # type: ignore[arg-type]

    with pytest.raises(HandlerError) as excinfo:
        await transport.send_json("POST", "/api/ratings/submit", {"stars": 9})

    assert excinfo.value.status_code == 422
    assert excinfo.value.endpoint == "/api/ratings/submit"


@pytest.mark.asyncio
async def test_json_transport_wraps_client_errors() -> None:
    transport = JsonTransport(
        "http://x",
        FakeHttpSession(error=aiohttp.ClientConnectionError("refused")),  # type: ignore[arg-type]
    )

    with pytest.raises(HandlerError) as excinfo:
        await transport.send_json("POST", "/api/location/update", {"lat": 0})

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)
