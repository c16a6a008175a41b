from __future__ import annotations

import datetime as dt
import logging

import httpx

from galleryaccess.config import Settings
from galleryaccess.domain import EPOCH, Appointment, AppointmentLookupError, ConfigurationError
from galleryaccess.ghl_client import fetch_appointments

logger = logging.getLogger(__name__)

_DAY = dt.timedelta(days=1)


def _epoch_ms(moment: dt.datetime) -> int:
    return (moment - EPOCH) // dt.timedelta(milliseconds=1)


def today_bounds(now: dt.datetime, utc_offset: dt.timedelta) -> tuple[int, int]:
    """Local day containing `now`, as UTC epoch ms: [midnight, midnight + 24h - 1ms].

    e.g. for -05:00 local midnight is 05:00 UTC.
    """
    local_now = now.astimezone(dt.timezone(utc_offset))
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_ms = _epoch_ms(local_midnight)
    end_ms = start_ms + _DAY // dt.timedelta(milliseconds=1) - 1
    return start_ms, end_ms


class AppointmentLookup:
    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    def fetch_today(self, now: dt.datetime) -> list[Appointment]:
        settings = self._settings
        if not settings.location_id:
            raise ConfigurationError("Missing required environment variable: GHL_LOCATION_ID")
        if not settings.api_key:
            raise ConfigurationError("Missing required environment variable: GHL_API_KEY")

        start_ms, end_ms = today_bounds(now, settings.utc_offset)
        logger.info("Fetching appointments: location=%s start=%d end=%d", settings.location_id, start_ms, end_ms)

        data = fetch_appointments(
            api_base_url=settings.api_base_url,
            api_key=settings.api_key,
            location_id=settings.location_id,
            start_ms=start_ms,
            end_ms=end_ms,
            timeout_seconds=settings.http_timeout_seconds,
            transport=self._transport,
        )
        return _parse_appointments(data)


def _parse_appointments(data: object) -> list[Appointment]:
    if not isinstance(data, dict):
        raise AppointmentLookupError("Malformed appointments response: expected an object", body=repr(data))

    records = data.get("appointments")
    if records is None:
        return []
    if not isinstance(records, list):
        raise AppointmentLookupError("Malformed appointments response: 'appointments' is not a list", body=repr(data))

    appointments: list[Appointment] = []
    for record in records:
        if not isinstance(record, dict):
            raise AppointmentLookupError("Malformed appointments response: entry is not an object", body=repr(record))
        appointments.append(Appointment.from_record(record))

    logger.info("Appointments today: %d", len(appointments))
    return appointments
