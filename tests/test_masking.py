from __future__ import annotations

from ridesync._masking import mask_for_log


def test_card_numbers_keep_last_four_digits() -> None:
    payload = {"amount": 1500, "card_number": "4111 1111 1111 1234", "cvv": "123", "iban": "CI93"}

    masked = mask_for_log(payload)

    assert masked["amount"] == 1500
    assert masked["card_number"] == "****1234"
    assert masked["cvv"] == "<redacted>"
    assert masked["iban"] == "****"


def test_contact_fields_are_partially_masked() -> None:
    masked = mask_for_log({"profile": {"email": "ada@example.test", "phoneNumber": "+225 07 00 00 00 42", "name": "Ada"}})

    assert masked["profile"] == {"email": "a***@example.test", "phoneNumber": "***42", "name": "Ada"}


def test_coordinates_are_coarsened() -> None:
    payload = {"pickup": {"lat": 5.359952, "lng": -4.008256}, "points": [{"latitude": 5.31234, "longitude": -4.01999}]}

    masked = mask_for_log(payload)

    assert masked["pickup"] == {"lat": 5.36, "lng": -4.01}
    assert masked["points"] == [{"latitude": 5.31, "longitude": -4.02}]


def test_nested_object_under_sensitive_key_is_hidden() -> None:
    masked = mask_for_log({"card": {"number": "4111111111111111", "expiry": "12/30"}, "Authorization": "Bearer abc"})

    assert masked == {"card": "<redacted>", "Authorization": "<redacted>"}


def test_input_is_not_modified() -> None:
    payload = {"phone": "0700000042", "stops": [{"lat": 1.23456}]}

    mask_for_log(payload)

    assert payload == {"phone": "0700000042", "stops": [{"lat": 1.23456}]}
