"""Tests for the booking lifecycle service (create / edit / cancel / complete)."""

from __future__ import annotations

import threading
import time as _time
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from app.domain.bus import EventBus
from app.domain.errors import BookingConflict, BookingNotFound, InvalidInput
from app.domain.models import (
    BookingStatus,
    ConflictType,
    CreateBookingRequest,
    UpdateBookingRequest,
)
from app.repos.memory import BookingRepository, ConfigRepository, VenueCatalogRepository
from app.services.bookings import BookingService
from app.services.civil_time import resolve_timezone
from app.services.conflicts import ConflictEvaluator
from app.services.locks import VenueLockRegistry

IST = resolve_timezone("Asia/Kolkata")


def _service(repo: BookingRepository | None = None) -> BookingService:
    repo = repo or BookingRepository()
    evaluator = ConflictEvaluator(
        bookings=repo,
        config_provider=ConfigRepository(),
        catalog=VenueCatalogRepository(["Hall A", "Hall B"]),
        zone=IST,
    )
    return BookingService(
        repo=repo, evaluator=evaluator, bus=EventBus(), locks=VenueLockRegistry()
    )


@pytest.fixture()
def service() -> BookingService:
    return _service()


def _request(**overrides) -> CreateBookingRequest:
    defaults = dict(
        name="Booker",
        venues=["Hall A"],
        occasion_date="2025-03-10",
        occasion_time="18:00",
    )
    defaults.update(overrides)
    return CreateBookingRequest(**defaults)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_persists_booked_booking(service):
    booking = service.create(_request(venues=" Hall A ", occasion_time="6:00"))

    assert booking.status == BookingStatus.BOOKED
    assert booking.venues == ["Hall A"]
    assert booking.occasion_date == date(2025, 3, 10)
    assert booking.occasion_time == "06:00"
    assert booking.conflict_warning is None
    assert service.repo.get(booking.id) == booking


def test_create_rejects_hard_conflict(service):
    service.create(_request(name="First"))

    with pytest.raises(BookingConflict) as exc_info:
        service.create(_request(name="Second", occasion_time="18:30"))

    result = exc_info.value.result
    assert result.conflict_type == ConflictType.HARD
    assert result.occupied_venues == ["Hall A"]
    assert len(service.repo.list_all()) == 1


def test_create_with_soft_conflict_records_warning(service):
    service.create(_request(name="First"))

    booking = service.create(_request(name="Second", occasion_time="19:30"))

    assert booking.conflict_warning is not None
    assert booking.conflict_warning.startswith("BUFFER ALERT")


def test_create_on_bypass_venue_skips_conflicts(service):
    service.create(_request(venues="house"))

    booking = service.create(_request(venues="House"))

    assert booking.status == BookingStatus.BOOKED


def test_create_rejects_malformed_time(service):
    with pytest.raises(InvalidInput):
        service.create(_request(occasion_time="late evening"))


def test_concurrent_creates_for_same_slot_admit_only_one():
    class SlowRepository(BookingRepository):
        def find_active_in_range(self, day_start, day_end, exclude_id=None):
            found = super().find_active_in_range(day_start, day_end, exclude_id)
            _time.sleep(0.05)
            return found

    service = _service(SlowRepository())
    start = threading.Barrier(2)

    def attempt(name: str):
        start.wait()
        try:
            return service.create(_request(name=name))
        except BookingConflict as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(attempt, ["One", "Two"]))

    conflicts = [o for o in outcomes if isinstance(o, BookingConflict)]
    assert len(conflicts) == 1
    assert len(service.repo.list_all()) == 1


class PausingRepository(BookingRepository):
    """Stalls the next lookup once armed so another request can run in between."""

    def __init__(self) -> None:
        super().__init__()
        self.first_read = threading.Event()
        self._armed = False

    def arm(self) -> None:
        self._armed = True

    def get(self, booking_id):
        found = super().get(booking_id)
        if self._armed:
            self._armed = False
            self.first_read.set()
            _time.sleep(0.1)
        return found


def _interleave(service: BookingService, background, foreground):
    """Run *foreground* while *background* sits between its read and its write."""
    service.repo.arm()
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(background)
        assert service.repo.first_read.wait(timeout=2)
        foreground()
        return future.result()


def test_cancel_during_edit_is_not_undone():
    service = _service(PausingRepository())
    booking = service.create(_request(name="Original"))

    def reuse_slot():
        service.cancel(booking.id)
        service.create(_request(name="Newcomer"))

    _interleave(
        service,
        lambda: service.update(booking.id, UpdateBookingRequest(name="Renamed")),
        reuse_slot,
    )

    stored = service.repo.get(booking.id)
    assert stored.status == BookingStatus.CANCELLED
    assert stored.name == "Renamed"
    active = service.repo.find_active_in_range(date(2025, 3, 10), date(2025, 3, 10))
    assert [b.name for b in active] == ["Newcomer"]


def test_complete_during_edit_is_kept():
    service = _service(PausingRepository())
    booking = service.create(_request())

    _interleave(
        service,
        lambda: service.update(booking.id, UpdateBookingRequest(description="Dinner")),
        lambda: service.complete(booking.id),
    )

    stored = service.repo.get(booking.id)
    assert stored.status == BookingStatus.COMPLETED
    assert stored.description == "Dinner"


def test_edit_after_concurrent_cancel_is_rejected():
    service = _service(PausingRepository())
    booking = service.create(_request())
    outcome = {}

    def edit():
        try:
            service.update(booking.id, UpdateBookingRequest(name="Late edit"))
        except InvalidInput as exc:
            outcome["error"] = exc

    # The cancel holds the booking while the edit waits for it.
    _interleave(service, lambda: service.cancel(booking.id), edit)

    assert "error" in outcome
    assert service.repo.get(booking.id).name == "Booker"


def test_concurrent_edits_of_one_booking_keep_both_changes():
    service = _service(PausingRepository())
    booking = service.create(_request())

    _interleave(
        service,
        lambda: service.update(booking.id, UpdateBookingRequest(description="Dinner")),
        lambda: service.update(booking.id, UpdateBookingRequest(mobile="9800000000")),
    )

    stored = service.repo.get(booking.id)
    assert stored.description == "Dinner"
    assert stored.mobile == "9800000000"
    assert len(service.locks) == 0


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def test_update_does_not_conflict_with_itself(service):
    booking = service.create(_request())

    updated = service.update(booking.id, UpdateBookingRequest(occasion_time="18:30"))

    assert updated.occasion_time == "18:30"
    assert updated.updated_at is not None
    assert service.repo.get(booking.id).occasion_time == "18:30"


def test_update_into_existing_booking_is_rejected(service):
    service.create(_request(name="Hall A evening"))
    other = service.create(_request(name="Hall B evening", venues="Hall B"))

    with pytest.raises(BookingConflict):
        service.update(other.id, UpdateBookingRequest(venues=["Hall A"]))

    assert service.repo.get(other.id).venues == ["Hall B"]


def test_update_of_details_only_skips_conflict_check(service):
    booking = service.create(_request())

    updated = service.update(booking.id, UpdateBookingRequest(description="Wedding lunch"))

    assert updated.description == "Wedding lunch"


def test_update_missing_booking_raises(service):
    with pytest.raises(BookingNotFound):
        service.update("missing", UpdateBookingRequest(description="x"))


def test_update_cancelled_booking_is_rejected(service):
    booking = service.create(_request())
    service.cancel(booking.id)

    with pytest.raises(InvalidInput):
        service.update(booking.id, UpdateBookingRequest(occasion_time="20:00"))


# ---------------------------------------------------------------------------
# Cancel / complete
# ---------------------------------------------------------------------------


def test_cancel_frees_the_slot(service):
    booking = service.create(_request(name="First"))
    cancelled = service.cancel(booking.id)

    assert cancelled.status == BookingStatus.CANCELLED
    replacement = service.create(_request(name="Second"))
    assert replacement.status == BookingStatus.BOOKED


def test_cancel_twice_is_a_no_op(service):
    booking = service.create(_request())
    service.cancel(booking.id)

    assert service.cancel(booking.id).status == BookingStatus.CANCELLED


def test_complete_booking(service):
    booking = service.create(_request())

    assert service.complete(booking.id).status == BookingStatus.COMPLETED


def test_cancelled_booking_cannot_be_completed(service):
    booking = service.create(_request())
    service.cancel(booking.id)

    with pytest.raises(InvalidInput):
        service.complete(booking.id)


def test_completed_booking_cannot_be_cancelled(service):
    booking = service.create(_request())
    service.complete(booking.id)

    with pytest.raises(InvalidInput):
        service.cancel(booking.id)


def test_completed_booking_cannot_be_edited(service):
    booking = service.create(_request())
    service.complete(booking.id)

    with pytest.raises(InvalidInput, match="Completed bookings cannot be edited"):
        service.update(booking.id, UpdateBookingRequest(occasion_time="20:00"))

    assert service.repo.get(booking.id).occasion_time == "18:00"
