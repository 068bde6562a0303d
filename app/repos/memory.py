"""In-memory repositories for bookings, venues, config and the audit timeline."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from app.domain.errors import InvalidInput
from app.domain.models import Booking, TimelineEntry, Venue


def _schedule_key(booking: Booking) -> tuple:
    return (booking.occasion_date, booking.occasion_time, booking.created_at)


class BookingRepository:
    """Dict-backed store for Booking instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}

    def add(self, booking: Booking) -> None:
        self._store[booking.id] = booking

    def save(self, booking: Booking) -> None:
        self._store[booking.id] = booking

    def get(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def list_all(self) -> list[Booking]:
        return sorted(self._store.values(), key=_schedule_key)

    def list_on(self, day: date) -> list[Booking]:
        return [b for b in self.list_all() if b.occasion_date == day]

    def find_active_in_range(
        self, day_start: date, day_end: date, exclude_id: str | None = None
    ) -> list[Booking]:
        """Return non-cancelled bookings whose date lies in ``[day_start, day_end]``."""
        return [
            b
            for b in self._store.values()
            if b.is_active
            and b.id != exclude_id
            and day_start <= b.occasion_date <= day_end
        ]

    def nearest(self, today: date) -> Booking | None:
        """Return the next active booking from *today*, else the most recent past one."""
        active = [b for b in self.list_all() if b.is_active]
        upcoming = [b for b in active if b.occasion_date >= today]
        if upcoming:
            return upcoming[0]
        return active[-1] if active else None


class ConfigRepository:
    """Holds the admin-editable booking window (assumed event duration)."""

    def __init__(self, booking_window_minutes: int | None = None) -> None:
        self._booking_window = booking_window_minutes

    def get_booking_window_minutes(self) -> int | None:
        return self._booking_window

    def set_booking_window_minutes(self, minutes: int) -> None:
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            raise InvalidInput("Booking window must be a positive number of minutes")
        self._booking_window = minutes


class VenueCatalogRepository:
    """Ordered list of bookable venue names."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._venues: list[Venue] = []
        for name in names:
            self.add(name)

    def list_all(self) -> list[str]:
        return [v.name for v in self._venues]

    def add(self, name: str) -> str:
        venue = Venue(name)
        if venue in self._venues:
            raise InvalidInput(f"Venue {venue.name!r} already exists")
        self._venues.append(venue)
        return venue.name

    def remove(self, name: str) -> bool:
        venue = Venue(name)
        if venue not in self._venues:
            return False
        self._venues.remove(venue)
        return True


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []

    def add(self, entry: TimelineEntry) -> None:
        self._entries.append(entry)

    def list_for_booking(self, booking_id: str) -> list[TimelineEntry]:
        return sorted(
            [e for e in self._entries if e.booking_id == booking_id],
            key=lambda e: e.timestamp,
        )
