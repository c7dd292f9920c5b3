"""HTTP transport used by the default action handlers."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from ridesync._constants import USER_AGENT
from ridesync._masking import mask_for_log
from ridesync.exceptions import HandlerError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the handler modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`JsonTransport`) concrete.
    """

    async def send_json(self, method: str, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]: ...


class JsonTransport:
    """JSON-over-HTTP transport on an aiohttp session.

    Any 2xx response is a success.  Non-2xx responses, client errors and
    timeouts raise :class:`~ridesync.exceptions.HandlerError` so the sync
    coordinator can count a failed attempt.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._headers = dict(headers or {})
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

    def set_header(self, name: str, value: str | None) -> None:
        """Set (or clear, with ``None``) a header sent on every request, e.g. ``authorization``."""
        if value is None:
            self._headers.pop(name, None)
        else:
            self._headers[name] = value

    async def send_json(self, method: str, endpoint: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Send *payload* as JSON and return the decoded JSON object (``{}`` for empty bodies)."""
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        headers.update(self._headers)

        url = f"{self._base_url}{endpoint}"
        body = json.dumps(payload, separators=(",", ":"))

        _logger.debug("%s %s payload=%s", method, url, mask_for_log(payload))

        try:
            async with self._http.request(method, url, data=body, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise HandlerError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except HandlerError:
            raise
        except TimeoutError as exc:
            raise HandlerError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise HandlerError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return {}

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            # The write went through; a non-JSON acknowledgement is not a failure.
            _logger.debug("Non-JSON response from %s: %s", endpoint, text[:64])
            return {}

        return decoded if isinstance(decoded, dict) else {"data": decoded}
