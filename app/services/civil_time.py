"""Civil (wall-clock) date and time handling in a fixed named timezone.

Bookings are recorded as a calendar date plus an ``HH:MM`` time in the
organisation's civil timezone, independent of the server's own zone. All
interval arithmetic happens on UTC instants; the civil zone is only used to
go from wall-clock values to instants and back to calendar days.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone, tzinfo

from dateutil import tz
from dateutil.parser import isoparse

from app.domain.errors import InvalidInput

DEFAULT_CIVIL_TIMEZONE = "Asia/Kolkata"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def resolve_timezone(name: str) -> tzinfo:
    """Look up an IANA zone name, raising ``RuntimeError`` if it is unknown."""
    zone = tz.gettz(name)
    if zone is None:
        raise RuntimeError(f"Unknown timezone: {name!r}")
    return zone


def parse_civil_date(value: date | str | None, zone: tzinfo) -> date:
    """Return the civil calendar date for *value*.

    Accepts a ``date``, a ``datetime`` or an ISO-8601 string (``YYYY-MM-DD`` or a
    full timestamp). Offset-aware timestamps are converted into *zone* before the
    date is taken, so ``2025-03-09T18:30:00Z`` is ``2025-03-10`` in India.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidInput("occasionDate is required")

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        try:
            moment = isoparse(value.strip())
        except (ValueError, OverflowError) as exc:
            raise InvalidInput(f"Invalid occasionDate: {value!r}") from exc
    else:
        raise InvalidInput(f"Invalid occasionDate: {value!r}")

    if moment.tzinfo is not None:
        moment = moment.astimezone(zone)
    return moment.date()


def parse_civil_time(value: time | str | None) -> time:
    """Parse a 24-hour ``HH:MM`` wall-clock time."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if value is None or not value.strip():
        raise InvalidInput("occasionTime is required")

    m = _TIME_RE.match(value.strip())
    if m is None:
        raise InvalidInput(f"Invalid occasionTime: {value!r} (expected HH:MM)")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidInput(f"Invalid occasionTime: {value!r} (expected HH:MM)")
    return time(hours, minutes)


def format_civil_time(value: time) -> str:
    return value.strftime("%H:%M")


def civil_instant(day: date, at: time, zone: tzinfo) -> datetime:
    """Return the UTC instant of wall-clock *at* on *day* in *zone*."""
    local = datetime.combine(day, at, tzinfo=zone)
    return local.astimezone(timezone.utc)


def civil_day(instant: datetime, zone: tzinfo) -> date:
    """Return the civil calendar day an aware *instant* falls on."""
    return instant.astimezone(zone).date()
