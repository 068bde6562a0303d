"""Booking lifecycle: create, edit, cancel and complete, guarded by conflict checks."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from app.domain.bus import EventBus
from app.domain.errors import (
    BookingConflict,
    BookingNotFound,
    InvalidInput,
    unavailable_on_error,
)
from app.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingUpdated,
)
from app.domain.models import (
    Booking,
    BookingStatus,
    ConflictCheckRequest,
    ConflictResult,
    ConflictType,
    CreateBookingRequest,
    UpdateBookingRequest,
    Venue,
    normalize_venues,
)
from app.repos.memory import BookingRepository
from app.services.civil_time import format_civil_time, parse_civil_date, parse_civil_time
from app.services.conflicts import ConflictEvaluator
from app.services.locks import VenueLockRegistry

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = ("venues", "occasion_date", "occasion_time")


class BookingService:
    """Runs the check-then-persist flow for bookings.

    Conflict evaluation and the write happen while holding the locks of every
    venue involved, so two concurrent requests for the same venue cannot both
    pass the check. Writes to an existing booking first take that booking's
    lock and re-read it, so an edit never restores a stale status.

    Only ``BOOKED`` bookings can be edited.
    """

    def __init__(
        self,
        repo: BookingRepository,
        evaluator: ConflictEvaluator,
        bus: EventBus,
        locks: VenueLockRegistry,
    ) -> None:
        self.repo = repo
        self.evaluator = evaluator
        self.bus = bus
        self.locks = locks

    def get(self, booking_id: str) -> Booking:
        with unavailable_on_error("Booking store"):
            booking = self.repo.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def create(self, request: CreateBookingRequest) -> Booking:
        day = parse_civil_date(request.occasion_date, self.evaluator.zone)
        at = format_civil_time(parse_civil_time(request.occasion_time))
        venues = normalize_venues(request.venues)

        with self.locks.hold(venues):
            result = self._check(day, at, venues)
            booking = Booking(
                name=request.name,
                mobile=request.mobile,
                description=request.description,
                caterer_name=request.caterer_name,
                venues=[v.name for v in venues],
                occasion_date=day,
                occasion_time=at,
                conflict_warning=_warning(result),
            )
            with unavailable_on_error("Booking store"):
                self.repo.add(booking)

        self.bus.publish(
            BookingCreated(
                booking_id=booking.id,
                conflict_type=result.conflict_type,
                conflict_message=result.conflict_message,
            )
        )
        return booking

    def update(self, booking_id: str, request: UpdateBookingRequest) -> Booking:
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "occasion_date" in changes:
            changes["occasion_date"] = parse_civil_date(
                changes["occasion_date"], self.evaluator.zone
            )
        if "occasion_time" in changes:
            changes["occasion_time"] = format_civil_time(
                parse_civil_time(changes["occasion_time"])
            )
        if "venues" in changes:
            changes["venues"] = [v.name for v in normalize_venues(changes["venues"])]

        with self.locks.hold_booking(booking_id):
            current = self.get(booking_id)
            if current.status != BookingStatus.BOOKED:
                raise InvalidInput(
                    f"{current.status.value.capitalize()} bookings cannot be edited"
                )

            changed = [k for k, v in changes.items() if getattr(current, k) != v]
            reschedule = any(k in _SCHEDULE_FIELDS for k in changed)

            day = changes.get("occasion_date", current.occasion_date)
            at = changes.get("occasion_time", current.occasion_time)
            venues = normalize_venues(changes.get("venues", current.venues))
            involved = set(venues) | current.venue_set

            result = ConflictResult()
            with self.locks.hold(involved):
                if reschedule:
                    result = self._check(day, at, venues, exclude_id=booking_id)
                    changes["conflict_warning"] = _warning(result)
                updated = current.model_copy(
                    update={**changes, "updated_at": datetime.now(timezone.utc)}
                )
                with unavailable_on_error("Booking store"):
                    self.repo.save(updated)

        self.bus.publish(
            BookingUpdated(
                booking_id=booking_id,
                changed_fields=changed,
                conflict_type=result.conflict_type,
                conflict_message=result.conflict_message,
            )
        )
        return updated

    def cancel(self, booking_id: str) -> Booking:
        with self.locks.hold_booking(booking_id):
            current = self.get(booking_id)
            if current.status == BookingStatus.CANCELLED:
                return current
            if current.status == BookingStatus.COMPLETED:
                raise InvalidInput("Completed bookings cannot be cancelled")
            cancelled = self._set_status(current, BookingStatus.CANCELLED)

        self.bus.publish(BookingCancelled(booking_id=booking_id))
        return cancelled

    def complete(self, booking_id: str) -> Booking:
        with self.locks.hold_booking(booking_id):
            current = self.get(booking_id)
            if current.status == BookingStatus.COMPLETED:
                return current
            if current.status == BookingStatus.CANCELLED:
                raise InvalidInput("Cancelled bookings cannot be completed")
            completed = self._set_status(current, BookingStatus.COMPLETED)

        self.bus.publish(BookingCompleted(booking_id=booking_id))
        return completed

    # ------------------------------------------------------------------

    def _check(
        self,
        day: date,
        at: str,
        venues: list[Venue],
        exclude_id: str | None = None,
    ) -> ConflictResult:
        result = self.evaluator.evaluate(
            ConflictCheckRequest(
                occasion_date=day,
                occasion_time=at,
                venues=[v.name for v in venues],
                exclude_booking_id=exclude_id,
            )
        )
        if result.conflict_type == ConflictType.HARD:
            logger.warning("Rejected booking on %s %s: %s", day, at, result.conflict_message)
            raise BookingConflict(result)
        return result

    def _set_status(self, booking: Booking, status: BookingStatus) -> Booking:
        updated = booking.model_copy(
            update={"status": status, "updated_at": datetime.now(timezone.utc)}
        )
        with self.locks.hold(booking.venue_set):
            with unavailable_on_error("Booking store"):
                self.repo.save(updated)
        return updated


def _warning(result: ConflictResult) -> str | None:
    if result.conflict_type == ConflictType.SOFT:
        return result.conflict_message
    return None
