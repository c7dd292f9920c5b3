"""Masking of rider data in DEBUG logs.

Queued actions carry card details, contact data and precise pickup
locations.  :func:`mask_for_log` returns a copy of an action payload in
which each sensitive field is reduced to what is still useful when reading
a log: the last four card digits, the email domain, a coordinate rounded
to roughly one kilometre.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

#: Decimal places kept for latitude/longitude (0.01 degree is about 1.1 km).
COORDINATE_PRECISION = 2


def _normalize(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _hide(_value: Any) -> str:
    return "<redacted>"


def _last_four(value: Any) -> str:
    digits = "".join(ch for ch in str(value) if ch.isalnum())
    if len(digits) <= 4:
        return "****"
    return f"****{digits[-4:]}"


def _email(value: Any) -> str:
    local, sep, domain = str(value).partition("@")
    if not sep:
        return "<redacted>"
    return f"{local[:1]}***@{domain}"


def _phone(value: Any) -> str:
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return f"***{digits[-2:]}" if len(digits) > 2 else "***"


def _coordinate(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return round(float(value), COORDINATE_PRECISION)


_MASKS: dict[str, Callable[[Any], Any]] = {
    # Credentials
    "password": _hide,
    "token": _hide,
    "accesstoken": _hide,
    "refreshtoken": _hide,
    "authorization": _hide,
    "cookie": _hide,
    # Payment submissions
    "cvv": _hide,
    "cvc": _hide,
    "pin": _hide,
    "paymenttoken": _hide,
    "cardtoken": _hide,
    "cardnumber": _last_four,
    "card": _last_four,
    "pan": _last_four,
    "iban": _last_four,
    # Profile updates
    "email": _email,
    "phone": _phone,
    "phonenumber": _phone,
    # Location updates and trip pickups
    "lat": _coordinate,
    "lng": _coordinate,
    "lon": _coordinate,
    "latitude": _coordinate,
    "longitude": _coordinate,
}


def mask_for_log(value: Any) -> Any:
    """Return a copy of a JSON-like *value* with rider data masked.

    Mappings and lists are walked recursively; the input is never modified.
    A nested object under a masked key (``{"card": {...}}``) is hidden
    entirely.
    """
    if isinstance(value, Mapping):
        masked: dict[str, Any] = {}
        for key, item in value.items():
            mask = _MASKS.get(_normalize(str(key)))
            if mask is None:
                masked[str(key)] = mask_for_log(item)
            elif isinstance(item, (Mapping, list, tuple)):
                masked[str(key)] = "<redacted>"
            else:
                masked[str(key)] = mask(item)
        return masked
    if isinstance(value, (list, tuple)):
        return [mask_for_log(item) for item in value]
    return value
