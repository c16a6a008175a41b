from __future__ import annotations

import datetime as dt
import enum
import math
import re
from dataclasses import dataclass
from typing import Any

_CODE_RE = re.compile(r"[A-Za-z0-9]{4}")

# Date-time with optional fraction and offset: fraction padded to 6 digits, offset gets a colon.
_ISO_DATETIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>[+-]\d{2}:?\d{2})?$"
)

EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


def is_valid_code_format(code: str) -> bool:
    # Exactly 4 alphanumeric characters, case-sensitive.
    return _CODE_RE.fullmatch(code) is not None


def _normalize_iso(raw: str) -> str:
    match = _ISO_DATETIME_RE.match(raw)
    if not match:
        return raw
    text = match.group("base")
    if match.group("frac"):
        text += "." + match.group("frac").ljust(6, "0")[:6]
    tz = match.group("tz")
    if tz:
        text += tz if ":" in tz else f"{tz[:3]}:{tz[3:]}"
    return text


def parse_start_time(value: Any) -> dt.datetime | None:
    """Resolve an upstream start time to an aware UTC datetime.

    The scheduling service sends either epoch milliseconds or an ISO-8601
    string. Returns None when the value cannot be read.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            return EPOCH + dt.timedelta(milliseconds=value)
        except OverflowError:
            return None

    if not isinstance(value, str) or not value.strip():
        return None

    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    raw = _normalize_iso(raw)
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


@dataclass(frozen=True)
class Appointment:
    """A single appointment as returned by the scheduling service.

    Only the fields the access check needs are kept. start_time stays raw:
    reading it is part of the validation, not of the lookup.
    """

    contact_id: Any
    start_time: Any
    location_id: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Appointment:
        return cls(
            contact_id=record.get("contactId"),
            start_time=record.get("startTime"),
            location_id=record.get("locationId"),
        )

    def matches_code(self, code: str) -> bool:
        return isinstance(self.contact_id, str) and self.contact_id.endswith(code)

    def start_instant(self) -> dt.datetime | None:
        return parse_start_time(self.start_time)


def _format_hours(delta: dt.timedelta) -> str:
    hours = delta.total_seconds() / 3600
    text = f"{hours:g}"
    return f"{text} hour" if hours == 1 else f"{text} hours"


@dataclass(frozen=True)
class AccessWindow:
    before: dt.timedelta
    after: dt.timedelta

    def contains(self, start: dt.datetime, now: dt.datetime) -> bool:
        # Both ends inclusive.
        return start - self.before <= now <= start + self.after

    def describe(self) -> str:
        return f"{_format_hours(self.before)} before → {_format_hours(self.after)} after appointment time"


class DenialKind(str, enum.Enum):
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    UNREADABLE_START = "unreadable_start"
    OUTSIDE_WINDOW = "outside_window"


@dataclass(frozen=True)
class Verdict:
    valid: bool
    reason: str | None = None
    kind: DenialKind | None = None

    @classmethod
    def granted(cls) -> Verdict:
        return cls(valid=True)

    @classmethod
    def denied(cls, kind: DenialKind, reason: str) -> Verdict:
        return cls(valid=False, reason=reason, kind=kind)

    def to_dict(self) -> dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "error": self.reason}


class ConfigurationError(RuntimeError):
    """Required configuration is missing or unreadable.

    Fatal for the instance: no request can be served until it is fixed.
    """


class AppointmentLookupError(RuntimeError):
    """The scheduling service did not return a usable appointment list.

    status_code is None when the request never got a response.
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
