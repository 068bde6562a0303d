"""Domain events emitted during the booking lifecycle."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.domain.models import ConflictType


class BookingCreated(BaseModel):
    """Fired when a new Booking is persisted."""

    booking_id: str
    conflict_type: ConflictType = ConflictType.NONE
    conflict_message: str = ""


class BookingUpdated(BaseModel):
    """Fired after an existing booking has been edited."""

    booking_id: str
    changed_fields: list[str] = Field(default_factory=list)
    conflict_type: ConflictType = ConflictType.NONE
    conflict_message: str = ""


class BookingCancelled(BaseModel):
    booking_id: str


class BookingCompleted(BaseModel):
    booking_id: str


class BookingWindowChanged(BaseModel):
    """Fired when an administrator changes the assumed event duration."""

    previous_minutes: int | None
    current_minutes: int
