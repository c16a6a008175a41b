from __future__ import annotations

import datetime as dt
import math
import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv

from galleryaccess.domain import AccessWindow, ConfigurationError

DEFAULT_API_BASE = "https://rest.gohighlevel.com"

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):(\d{2})$")


def parse_utc_offset(raw: str | None) -> dt.timedelta:
    # APPOINTMENT_TZ is a fixed offset like "-05:00". Missing or malformed means UTC.
    match = _OFFSET_RE.match(raw or "+00:00")
    if not match:
        return dt.timedelta(0)
    hours, minutes = int(match.group(2)), int(match.group(3))
    # dt.timezone only takes offsets strictly inside a day.
    if hours >= 24 or minutes >= 60:
        return dt.timedelta(0)
    sign = 1 if match.group(1) == "+" else -1
    return sign * dt.timedelta(hours=hours, minutes=minutes)


@dataclass(frozen=True)
class Settings:
    api_key: str
    location_id: str

    utc_offset: dt.timedelta = dt.timedelta(0)
    api_base_url: str = DEFAULT_API_BASE

    # Access window around the appointment start
    window_before_hours: float = 2.0
    window_after_hours: float = 4.0

    http_timeout_seconds: float = 20.0

    @property
    def tz(self) -> dt.timezone:
        return dt.timezone(self.utc_offset)

    @property
    def access_window(self) -> AccessWindow:
        return AccessWindow(
            before=dt.timedelta(hours=self.window_before_hours),
            after=dt.timedelta(hours=self.window_after_hours),
        )


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _float_env(name: str, default: str, *, allow_zero: bool) -> float:
    raw = os.getenv(name, default).strip()
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name} value: {raw!r}. Expected a number.") from e

    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise ConfigurationError(f"{name} must be {bound}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    api_base_url = os.getenv("GHL_API_BASE", DEFAULT_API_BASE).strip().rstrip("/") or DEFAULT_API_BASE

    return Settings(
        api_key=_require("GHL_API_KEY"),
        location_id=_require("GHL_LOCATION_ID"),
        utc_offset=parse_utc_offset(os.getenv("APPOINTMENT_TZ")),
        api_base_url=api_base_url,
        window_before_hours=_float_env("ACCESS_WINDOW_BEFORE_HOURS", "2", allow_zero=True),
        window_after_hours=_float_env("ACCESS_WINDOW_AFTER_HOURS", "4", allow_zero=True),
        http_timeout_seconds=_float_env("GHL_HTTP_TIMEOUT_SECONDS", "20", allow_zero=False),
    )
