from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Protocol

from galleryaccess.config import Settings
from galleryaccess.domain import Appointment, DenialKind, Verdict, is_valid_code_format

logger = logging.getLogger(__name__)

INVALID_FORMAT_REASON = "Invalid code format. Expected 4 alphanumeric characters."
NOT_FOUND_REASON = "No appointment found for today with this code."
AMBIGUOUS_REASON = "Ambiguous code — multiple appointments match. Please contact us."
UNREADABLE_START_REASON = "Could not read appointment start time."


class AppointmentSource(Protocol):
    def fetch_today(self, now: dt.datetime) -> list[Appointment]: ...


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_local_time(moment: dt.datetime, tz: dt.tzinfo) -> str:
    # 12-hour clock, no leading zero on the hour: "3:05 PM"
    local = moment.astimezone(tz)
    display = local.hour % 12 or 12
    period = "PM" if local.hour >= 12 else "AM"
    return f"{display}:{local.minute:02d} {period}"


class CodeValidator:
    """Decides whether a gallery access code is honoured right now.

    The code is the last 4 characters of the contact id on one of today's
    appointments. Access is granted only when exactly one appointment matches
    and the current instant is inside the access window around its start.
    """

    def __init__(
        self,
        settings: Settings,
        lookup: AppointmentSource,
        *,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._lookup = lookup
        self._clock = clock or _utc_now

    def validate(self, code: str) -> Verdict:
        if not is_valid_code_format(code):
            return Verdict.denied(DenialKind.INVALID_FORMAT, INVALID_FORMAT_REASON)

        # Sampled once so the lookup day and the window check agree.
        now = self._clock()

        appointments = self._lookup.fetch_today(now)
        matches = [a for a in appointments if a.matches_code(code)]

        if not matches:
            return Verdict.denied(DenialKind.NOT_FOUND, NOT_FOUND_REASON)
        if len(matches) > 1:
            logger.warning("Code matches %d appointments today, refusing", len(matches))
            return Verdict.denied(DenialKind.AMBIGUOUS, AMBIGUOUS_REASON)

        appointment = matches[0]
        start = appointment.start_instant()
        if start is None:
            logger.warning("Unreadable start time on matched appointment: %r", appointment.start_time)
            return Verdict.denied(DenialKind.UNREADABLE_START, UNREADABLE_START_REASON)

        window = self._settings.access_window
        if window.contains(start, now):
            return Verdict.granted()

        reason = (
            f"Appointment is at {format_local_time(start, self._settings.tz)} but you are outside the access "
            f"window ({window.describe()})."
        )
        return Verdict.denied(DenialKind.OUTSIDE_WINDOW, reason)
