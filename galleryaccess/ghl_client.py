from __future__ import annotations

from typing import Any

import httpx

from galleryaccess.domain import AppointmentLookupError


def build_appointments_url(api_base_url: str) -> str:
    return f"{api_base_url.rstrip('/')}/v1/appointments/"


def fetch_appointments(
    *,
    api_base_url: str,
    api_key: str,
    location_id: str,
    start_ms: int,
    end_ms: int,
    timeout_seconds: float = 20.0,
    transport: httpx.BaseTransport | None = None,
) -> Any:
    """Single GET against the appointments endpoint; returns the decoded JSON body."""
    url = build_appointments_url(api_base_url)
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    params = {
        "locationId": location_id,
        "startDate": str(start_ms),
        "endDate": str(end_ms),
    }

    try:
        with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
            r = client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        raise AppointmentLookupError(f"Appointments API request failed: {type(e).__name__}: {e}") from e

    if not r.is_success:
        raise AppointmentLookupError(
            f"Appointments API returned {r.status_code}: {r.text}",
            status_code=r.status_code,
            body=r.text,
        )

    try:
        return r.json()
    except ValueError as e:
        raise AppointmentLookupError(
            f"Appointments API returned a non-JSON body: {r.text}",
            status_code=r.status_code,
            body=r.text,
        ) from e
