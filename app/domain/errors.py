"""Error taxonomy for the booking conflict service."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.models import ConflictResult


class BookingError(Exception):
    """Base class for every error raised by the booking domain."""


class InvalidInput(BookingError):
    """A proposal or request is missing required fields or is malformed."""


class DependencyUnavailable(BookingError):
    """A collaborator (config, venue catalog or booking store) failed to respond."""


class BookingNotFound(BookingError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class BookingConflict(BookingError):
    """Raised when a booking would hard-overlap an existing one on a shared venue."""

    def __init__(self, result: ConflictResult) -> None:
        super().__init__(result.conflict_message)
        self.result = result


@contextmanager
def unavailable_on_error(what: str) -> Iterator[None]:
    """Re-raise any collaborator failure inside the block as ``DependencyUnavailable``.

    Domain errors pass through untouched.
    """
    try:
        yield
    except BookingError:
        raise
    except Exception as exc:
        raise DependencyUnavailable(f"{what} is unavailable") from exc
