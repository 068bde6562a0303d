"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging

from app.domain.bus import EventBus
from app.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingUpdated,
    BookingWindowChanged,
)
from app.domain.models import ConflictType, TimelineEntry, TimelineEntryType
from app.repos.memory import BookingRepository, TimelineRepository

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to the repositories."""

    def __init__(
        self,
        bus: EventBus,
        booking_repo: BookingRepository,
        timeline_repo: TimelineRepository,
    ) -> None:
        self.bus = bus
        self.booking_repo = booking_repo
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(BookingCreated, self.on_booking_created)
        self.bus.subscribe(BookingUpdated, self.on_booking_updated)
        self.bus.subscribe(BookingCancelled, self.on_booking_cancelled)
        self.bus.subscribe(BookingCompleted, self.on_booking_completed)
        self.bus.subscribe(BookingWindowChanged, self.on_booking_window_changed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_booking_created(self, event: BookingCreated) -> None:
        stored = self.booking_repo.get(event.booking_id)
        if stored is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.CREATED,
                payload={
                    "venues": stored.venues,
                    "occasion_date": stored.occasion_date.isoformat(),
                    "occasion_time": stored.occasion_time,
                },
            )
        )
        logger.info(
            "Booking %s created for %s on %s %s",
            stored.id,
            ", ".join(stored.venues),
            stored.occasion_date,
            stored.occasion_time,
        )
        self._record_soft_conflict(event.booking_id, event.conflict_type, event.conflict_message)

    def on_booking_updated(self, event: BookingUpdated) -> None:
        if self.booking_repo.get(event.booking_id) is None:
            return

        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.UPDATED,
                payload={"changed_fields": event.changed_fields},
            )
        )
        self._record_soft_conflict(event.booking_id, event.conflict_type, event.conflict_message)

    def on_booking_cancelled(self, event: BookingCancelled) -> None:
        if self.booking_repo.get(event.booking_id) is None:
            return

        self.timeline_repo.add(
            TimelineEntry(booking_id=event.booking_id, type=TimelineEntryType.CANCELLED)
        )
        logger.info("Booking %s cancelled", event.booking_id)

    def on_booking_completed(self, event: BookingCompleted) -> None:
        if self.booking_repo.get(event.booking_id) is None:
            return

        self.timeline_repo.add(
            TimelineEntry(booking_id=event.booking_id, type=TimelineEntryType.COMPLETED)
        )

    def on_booking_window_changed(self, event: BookingWindowChanged) -> None:
        logger.info(
            "Booking window changed from %s to %s minutes",
            event.previous_minutes,
            event.current_minutes,
        )

    def _record_soft_conflict(
        self, booking_id: str, conflict_type: ConflictType, message: str
    ) -> None:
        if conflict_type != ConflictType.SOFT:
            return
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=booking_id,
                type=TimelineEntryType.SOFT_CONFLICT,
                payload={"message": message},
            )
        )
        logger.warning("Booking %s accepted with buffer warning: %s", booking_id, message)
