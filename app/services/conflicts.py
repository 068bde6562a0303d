"""Service for detecting scheduling conflicts between venue bookings."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Protocol

from app.domain.errors import InvalidInput, unavailable_on_error
from app.domain.models import (
    Booking,
    ConflictCheckRequest,
    ConflictConfig,
    ConflictResult,
    ConflictType,
    Venue,
    normalize_venues,
)
from app.services.civil_time import (
    DEFAULT_CIVIL_TIMEZONE,
    civil_day,
    civil_instant,
    parse_civil_date,
    parse_civil_time,
    resolve_timezone,
)

DEFAULT_EVENT_DURATION_MINUTES = 60
DEFAULT_BUFFER_MINUTES = 120


class ConfigProvider(Protocol):
    def get_booking_window_minutes(self) -> int | None: ...


class VenueCatalog(Protocol):
    def list_all(self) -> list[str]: ...


class BookingSource(Protocol):
    def find_active_in_range(
        self, day_start: date, day_end: date, exclude_id: str | None = None
    ) -> list[Booking]: ...


@dataclass(frozen=True)
class BookingInterval:
    """The time a booking occupies its venues, as UTC instants.

    ``effective_start`` is ``start`` minus the preparation buffer; there is no
    trailing buffer after ``end``.
    """

    start: datetime
    end: datetime
    effective_start: datetime

    def overlaps(self, other: BookingInterval) -> bool:
        return self.start < other.end and self.end > other.start

    def buffer_overlaps(self, other: BookingInterval) -> bool:
        return self.effective_start < other.end and self.end > other.effective_start


def booking_interval(
    day: date, at: time, config: ConflictConfig, zone: tzinfo
) -> BookingInterval:
    start = civil_instant(day, at, zone)
    return BookingInterval(
        start=start,
        end=start + timedelta(minutes=config.event_duration_minutes),
        effective_start=start - timedelta(minutes=config.buffer_minutes),
    )


def query_window(
    proposed: BookingInterval, config: ConflictConfig, zone: tzinfo
) -> tuple[date, date]:
    """Return the inclusive civil-day range that can hold a relevant booking.

    Covers at least ``[day(effective_start), day(end)]`` and is widened so that a
    candidate whose own duration or buffer crosses midnight is still fetched.
    """
    earliest_start = proposed.effective_start - timedelta(
        minutes=config.event_duration_minutes
    )
    latest_start = proposed.end + timedelta(minutes=config.buffer_minutes)
    return civil_day(earliest_start, zone), civil_day(latest_start, zone)


def _buffer_label(minutes: int) -> str:
    if minutes and minutes % 60 == 0:
        return f"{minutes // 60}-hour"
    return f"{minutes}-minute"


def _hard_message(common: list[Venue], booking: Booking) -> str:
    venues = ", ".join(v.name for v in common)
    return (
        f'HARD CONFLICT: {venues} is booked by "{booking.name}" '
        f"({booking.occasion_time})."
    )


def _soft_message(booking: Booking, config: ConflictConfig) -> str:
    return (
        f'BUFFER ALERT: "{booking.name}" is scheduled at {booking.occasion_time}. '
        f"{_buffer_label(config.buffer_minutes)} buffer required."
    )


def detect_conflicts(
    proposed_venues: list[Venue],
    proposed: BookingInterval,
    candidates: Iterable[Booking],
    config: ConflictConfig,
    catalog: list[str],
    zone: tzinfo,
) -> ConflictResult:
    """Classify how *proposed* collides with *candidates* on shared venues.

    Overlap rule: hard if ``start < other.end AND end > other.start``; soft if only
    the buffered intervals ``[effective_start, end)`` overlap. Exact boundary
    touches are not conflicts. Candidates are visited in ``(start, id)`` order and
    the earliest conflict of the highest severity supplies the message.
    """
    timed = sorted(
        (
            (
                booking_interval(
                    b.occasion_date, parse_civil_time(b.occasion_time), config, zone
                ),
                b,
            )
            for b in candidates
            if b.is_active
        ),
        key=lambda pair: (pair[0].start, pair[1].id),
    )

    conflict_type = ConflictType.NONE
    message = ""
    occupied: set[str] = set()

    for interval, booking in timed:
        if not proposed.buffer_overlaps(interval):
            continue

        booked = booking.venue_set
        common = [v for v in proposed_venues if v in booked]
        if not common:
            continue
        occupied.update(v.key for v in common)

        if proposed.overlaps(interval):
            if conflict_type != ConflictType.HARD:
                conflict_type = ConflictType.HARD
                message = _hard_message(common, booking)
        elif conflict_type == ConflictType.NONE:
            conflict_type = ConflictType.SOFT
            message = _soft_message(booking, config)

    return ConflictResult(
        conflict_type=conflict_type,
        conflict_message=message,
        occupied_venues=[v.name for v in proposed_venues if v.key in occupied],
        available_venues=[name for name in catalog if Venue(name).key not in occupied],
    )


class ConflictEvaluator:
    """Decides whether a proposed booking collides with existing ones.

    Stateless between calls: every evaluation reads config, catalog and
    candidate bookings fresh from its collaborators and never writes.
    """

    def __init__(
        self,
        bookings: BookingSource,
        config_provider: ConfigProvider,
        catalog: VenueCatalog,
        buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
        default_duration_minutes: int = DEFAULT_EVENT_DURATION_MINUTES,
        zone: tzinfo | None = None,
    ) -> None:
        self.bookings = bookings
        self.config_provider = config_provider
        self.catalog = catalog
        self.buffer_minutes = buffer_minutes
        self.default_duration_minutes = default_duration_minutes
        self.zone = zone or resolve_timezone(DEFAULT_CIVIL_TIMEZONE)

    def snapshot_config(self) -> ConflictConfig:
        with unavailable_on_error("Booking window config"):
            minutes = self.config_provider.get_booking_window_minutes()
            # An unset (or zero) window falls back to the default duration.
            return ConflictConfig(
                event_duration_minutes=minutes or self.default_duration_minutes,
                buffer_minutes=self.buffer_minutes,
            )

    def list_catalog(self) -> list[str]:
        with unavailable_on_error("Venue catalog"):
            return list(self.catalog.list_all())

    def evaluate(self, proposal: ConflictCheckRequest) -> ConflictResult:
        if proposal.occasion_date is None or proposal.occasion_time is None:
            raise InvalidInput("occasionDate and occasionTime are required")
        if proposal.venues is None:
            raise InvalidInput("venues is required")

        day = parse_civil_date(proposal.occasion_date, self.zone)
        at = parse_civil_time(proposal.occasion_time)
        venues = normalize_venues(proposal.venues)

        if any(v.is_bypass for v in venues):
            return ConflictResult(available_venues=self.list_catalog())

        config = self.snapshot_config()
        catalog = self.list_catalog()

        proposed = booking_interval(day, at, config, self.zone)
        first_day, last_day = query_window(proposed, config, self.zone)
        with unavailable_on_error("Booking store"):
            candidates = self.bookings.find_active_in_range(
                first_day, last_day, exclude_id=proposal.exclude_booking_id
            )

        return detect_conflicts(venues, proposed, candidates, config, catalog, self.zone)
