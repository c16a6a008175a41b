from __future__ import annotations

import datetime as dt
import json
import logging
from unittest.mock import patch

import httpx
import pytest

from galleryaccess.config import Settings, parse_utc_offset
from galleryaccess.domain import Appointment, AppointmentLookupError, ConfigurationError
from galleryaccess.handler import CORS_HEADERS, extract_code, handle
from galleryaccess.lookup import AppointmentLookup
from galleryaccess.validator import CodeValidator

UTC = dt.timezone.utc


class _FakeLookup:
    def __init__(self, appointments: list[Appointment] | None = None, error: Exception | None = None):
        self.appointments = appointments or []
        self.error = error
        self.call_count = 0

    def fetch_today(self, now: dt.datetime) -> list[Appointment]:
        self.call_count += 1
        if self.error is not None:
            raise self.error
        return self.appointments


def _settings() -> Settings:
    return Settings(api_key="TEST_KEY", location_id="loc", api_base_url="http://ghl.test")


def _validator(lookup: _FakeLookup, now: dt.datetime) -> CodeValidator:
    return CodeValidator(_settings(), lookup, clock=lambda: now)


def _post(body: object) -> dict:
    raw = body if isinstance(body, str) else json.dumps(body)
    return {"httpMethod": "POST", "body": raw}


def _json(response: dict) -> dict:
    return json.loads(response["body"])


def test_options_preflight() -> None:
    response = handle({"httpMethod": "OPTIONS"})

    assert response["statusCode"] == 204
    assert response["body"] == ""
    assert response["headers"] == CORS_HEADERS


def test_other_methods_not_allowed() -> None:
    response = handle({"httpMethod": "GET"})

    assert response["statusCode"] == 405
    assert _json(response) == {"valid": False, "error": "Method not allowed."}


def test_invalid_json_body() -> None:
    response = handle(_post("{not json"))

    assert response["statusCode"] == 400
    assert _json(response)["error"] == "Invalid JSON body."


@pytest.mark.parametrize("body", [{}, {"contactId": "   "}, {"code": ""}, {"contactId": 1234}, ["WZ0e"]])
def test_missing_code(body: object) -> None:
    lookup = _FakeLookup()

    response = handle(_post(body), validator=_validator(lookup, dt.datetime(2024, 1, 1, tzinfo=UTC)))

    assert response["statusCode"] == 400
    assert _json(response)["error"] == "contactId is required."
    assert lookup.call_count == 0


def test_extract_code_prefers_primary_field_and_trims() -> None:
    assert extract_code({"contactId": " WZ0e ", "code": "AAAA"}) == "WZ0e"
    assert extract_code({"contactId": "", "code": " AAAA"}) == "AAAA"
    assert extract_code({"code": "BBBB"}) == "BBBB"


def test_bad_format_is_a_client_error() -> None:
    lookup = _FakeLookup()

    response = handle(_post({"contactId": "toolong"}), validator=_validator(lookup, dt.datetime(2024, 1, 1, tzinfo=UTC)))

    assert response["statusCode"] == 400
    assert _json(response)["valid"] is False
    assert "Invalid code format" in _json(response)["error"]
    assert lookup.call_count == 0


def test_valid_code_granted() -> None:
    lookup = _FakeLookup([Appointment(contact_id="hsAZzqlAcxscd0xlWZ0e", start_time="2024-01-01T15:00:00Z")])
    now = dt.datetime(2024, 1, 1, 16, 0, tzinfo=UTC)

    response = handle(_post({"code": "WZ0e"}), validator=_validator(lookup, now))

    assert response["statusCode"] == 200
    assert _json(response) == {"valid": True}
    assert response["headers"]["Access-Control-Allow-Origin"] == "*"


def test_business_denial_is_a_successful_request() -> None:
    lookup = _FakeLookup([])

    response = handle(_post({"contactId": "WZ0e"}), validator=_validator(lookup, dt.datetime(2024, 1, 1, tzinfo=UTC)))

    assert response["statusCode"] == 200
    assert _json(response) == {"valid": False, "error": "No appointment found for today with this code."}


def test_upstream_failure_is_internal_error_without_detail(caplog: pytest.LogCaptureFixture) -> None:
    def _upstream(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="secret upstream detail")

    settings = _settings()
    validator = CodeValidator(
        settings,
        AppointmentLookup(settings, transport=httpx.MockTransport(_upstream)),
        clock=lambda: dt.datetime(2024, 1, 1, 16, 0, tzinfo=UTC),
    )

    with caplog.at_level(logging.ERROR, logger="galleryaccess.handler"):
        response = handle(_post({"contactId": "WZ0e"}), validator=validator)

    assert response["statusCode"] == 500
    assert _json(response) == {"valid": False, "error": "Internal server error. Please try again."}
    assert "secret upstream detail" not in response["body"]
    assert "secret upstream detail" in caplog.text


def test_lookup_error_from_validator_is_internal_error() -> None:
    lookup = _FakeLookup(error=AppointmentLookupError("boom", status_code=502, body="bad gateway"))

    response = handle(_post({"contactId": "WZ0e"}), validator=_validator(lookup, dt.datetime(2024, 1, 1, tzinfo=UTC)))

    assert response["statusCode"] == 500
    assert lookup.call_count == 1


def test_missing_configuration_is_internal_error() -> None:
    with patch("galleryaccess.handler.load_settings", side_effect=ConfigurationError("Missing required environment variable: GHL_API_KEY")):
        response = handle(_post({"contactId": "WZ0e"}))

    assert response["statusCode"] == 500
    assert "GHL_API_KEY" not in response["body"]


def test_settings_are_used_to_build_validator() -> None:
    with (
        patch("galleryaccess.handler.load_settings") as load_settings,
        patch("galleryaccess.handler.AppointmentLookup") as lookup_cls,
    ):
        lookup_cls.return_value.fetch_today.return_value = []
        response = handle(_post({"contactId": "WZ0e"}), settings=_settings())

    load_settings.assert_not_called()
    lookup_cls.assert_called_once()
    assert response["statusCode"] == 200


def test_out_of_range_offset_still_serves_requests() -> None:
    settings = Settings(
        api_key="TEST_KEY",
        location_id="loc",
        utc_offset=parse_utc_offset("+24:00"),
    )
    lookup = _FakeLookup([Appointment(contact_id="hsAZzqlAcxscd0xlWZ0e", start_time="2024-01-01T15:00:00Z")])
    validator = CodeValidator(settings, lookup, clock=lambda: dt.datetime(2024, 1, 1, 16, 0, tzinfo=UTC))

    response = handle(_post({"contactId": "WZ0e"}), validator=validator)

    assert response["statusCode"] == 200
    assert _json(response) == {"valid": True}
