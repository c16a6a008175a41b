from __future__ import annotations

import json
import logging
from typing import Any

from galleryaccess.config import Settings, load_settings
from galleryaccess.domain import AppointmentLookupError, DenialKind
from galleryaccess.lookup import AppointmentLookup
from galleryaccess.validator import CodeValidator

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Content-Type": "application/json",
}

INTERNAL_ERROR_MESSAGE = "Internal server error. Please try again."


def _response(status_code: int, payload: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": "" if payload is None else json.dumps(payload, ensure_ascii=False),
    }


def _error(status_code: int, message: str) -> dict[str, Any]:
    return _response(status_code, {"valid": False, "error": message})


def extract_code(body: Any) -> str:
    # "contactId" is the primary field; "code" is kept for older gallery pages.
    if not isinstance(body, dict):
        return ""
    for field in ("contactId", "code"):
        value = body.get(field)
        if isinstance(value, str) and value:
            return value.strip()
    return ""


def _build_validator(settings: Settings | None) -> CodeValidator:
    settings = settings or load_settings()
    return CodeValidator(settings, AppointmentLookup(settings))


def handle(
    event: dict[str, Any],
    *,
    settings: Settings | None = None,
    validator: CodeValidator | None = None,
) -> dict[str, Any]:
    """Serve one validate-code request.

    event carries "httpMethod" and the raw JSON "body"; the result carries
    "statusCode", "headers" and "body".
    """
    method = (event.get("httpMethod") or "").upper()
    if method == "OPTIONS":
        return _response(204, None)
    if method != "POST":
        return _error(405, "Method not allowed.")

    try:
        body = json.loads(event.get("body") or "{}")
    except ValueError:
        return _error(400, "Invalid JSON body.")

    code = extract_code(body)
    if not code:
        return _error(400, "contactId is required.")

    try:
        validator = validator or _build_validator(settings)
        verdict = validator.validate(code)
    except AppointmentLookupError as e:
        logger.error("validate-code lookup failed (status=%s): %s", e.status_code, e)
        return _error(500, INTERNAL_ERROR_MESSAGE)
    except Exception as e:
        logger.error("validate-code error (%s: %s)", type(e).__name__, e)
        return _error(500, INTERNAL_ERROR_MESSAGE)

    if verdict.kind is DenialKind.INVALID_FORMAT:
        return _response(400, verdict.to_dict())
    return _response(200, verdict.to_dict())
