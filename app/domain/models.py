"""Domain models for the venue booking system."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.domain.errors import InvalidInput
from app.services.civil_time import format_civil_time, parse_civil_time

# Off-site or non-physical "venues" that never take part in scheduling.
BYPASS_VENUE_KEYS = frozenset({"na", "others", "house", "self"})


class BookingStatus(StrEnum):
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ConflictType(StrEnum):
    NONE = "none"
    SOFT = "soft"
    HARD = "hard"


class Role(StrEnum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    WATCHER = "WATCHER"


class TimelineEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SOFT_CONFLICT = "soft_conflict"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Venue value type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Venue:
    """A venue identifier, canonicalised on construction.

    ``name`` keeps the trimmed display text; ``key`` is the casefolded form used
    for every comparison, so ``Venue(" Hall A")`` equals ``Venue("hall a")``.
    """

    name: str = field(compare=False)
    key: str = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise InvalidInput(f"Venue must be a string, got {type(self.name).__name__}")
        name = self.name.strip()
        if not name:
            raise InvalidInput("Venue name must not be blank")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "key", name.casefold())

    @property
    def is_bypass(self) -> bool:
        return self.key in BYPASS_VENUE_KEYS


def normalize_venues(value: str | list[str] | tuple[str, ...] | None) -> list[Venue]:
    """Turn a scalar or list of venue names into an ordered, de-duplicated list.

    Raises ``InvalidInput`` when nothing usable is left.
    """
    if value is None:
        raise InvalidInput("venues is required")
    raw = [value] if isinstance(value, str) else list(value)

    venues: list[Venue] = []
    seen: set[str] = set()
    for item in raw:
        venue = Venue(item)
        if venue.key in seen:
            continue
        seen.add(venue.key)
        venues.append(venue)

    if not venues:
        raise InvalidInput("venues must contain at least one venue")
    return venues


class _CamelModel(BaseModel):
    """Accepts both camelCase and snake_case keys; serialises as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Booking(_CamelModel):
    id: str = Field(default_factory=_new_id)
    name: str
    mobile: str | None = None
    description: str | None = None
    caterer_name: str | None = None
    venues: list[str] = Field(validation_alias=AliasChoices("venues", "hall"))
    occasion_date: date
    occasion_time: str
    status: BookingStatus = BookingStatus.BOOKED
    conflict_warning: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime | None = None

    @field_validator("venues", mode="before")
    @classmethod
    def _normalize_venues(cls, value: object) -> list[str]:
        # Older records hold a single venue string instead of a list.
        try:
            return [v.name for v in normalize_venues(value)]
        except InvalidInput as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("occasion_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        try:
            return format_civil_time(parse_civil_time(value))
        except InvalidInput as exc:
            raise ValueError(str(exc)) from exc

    @property
    def venue_set(self) -> frozenset[Venue]:
        return frozenset(Venue(v) for v in self.venues)

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED


class ConflictConfig(BaseModel):
    """Snapshot of the scheduling policy taken at the start of an evaluation."""

    model_config = ConfigDict(frozen=True)

    event_duration_minutes: int = Field(default=60, gt=0)
    buffer_minutes: int = Field(default=120, ge=0)


class ConflictResult(_CamelModel):
    conflict_type: ConflictType = ConflictType.NONE
    conflict_message: str = ""
    occupied_venues: list[str] = Field(default_factory=list)
    available_venues: list[str] = Field(default_factory=list)


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    booking_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ConflictCheckRequest(_CamelModel):
    # Left loosely typed so that missing or malformed values surface as
    # InvalidInput from the evaluator rather than as schema errors.
    occasion_date: date | str | None = None
    occasion_time: str | None = None
    venues: str | list[str] | None = Field(
        default=None, validation_alias=AliasChoices("venues", "hall")
    )
    exclude_booking_id: str | None = None


class CreateBookingRequest(_CamelModel):
    name: str = Field(min_length=1)
    mobile: str | None = None
    description: str | None = None
    caterer_name: str | None = None
    venues: str | list[str] = Field(validation_alias=AliasChoices("venues", "hall"))
    occasion_date: date | str
    occasion_time: str


class UpdateBookingRequest(_CamelModel):
    name: str | None = Field(default=None, min_length=1)
    mobile: str | None = None
    description: str | None = None
    caterer_name: str | None = None
    venues: str | list[str] | None = Field(
        default=None, validation_alias=AliasChoices("venues", "hall")
    )
    occasion_date: date | str | None = None
    occasion_time: str | None = None


class BookingWindowUpdate(_CamelModel):
    booking_window: int = Field(gt=0, strict=True)


class BookingWindowResponse(_CamelModel):
    booking_window: int


class VenueCreateRequest(BaseModel):
    name: str
