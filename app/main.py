"""FastAPI application: entry point for the venue booking service."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from app.config import load_settings
from app.domain.bus import EventBus
from app.domain.errors import (
    BookingConflict,
    BookingNotFound,
    DependencyUnavailable,
    InvalidInput,
)
from app.domain.events import BookingWindowChanged
from app.domain.handlers import HandlerRegistry
from app.domain.models import (
    Booking,
    BookingWindowResponse,
    BookingWindowUpdate,
    ConflictCheckRequest,
    ConflictResult,
    CreateBookingRequest,
    Role,
    TimelineEntry,
    UpdateBookingRequest,
    VenueCreateRequest,
)
from app.repos.memory import (
    BookingRepository,
    ConfigRepository,
    TimelineRepository,
    VenueCatalogRepository,
)
from app.services.bookings import BookingService
from app.services.civil_time import civil_day, parse_civil_date, resolve_timezone
from app.services.conflicts import ConflictEvaluator
from app.services.locks import VenueLockRegistry

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Venue Booking Service")

# ── Singletons (created at import time for simplicity) ────────────────
civil_zone = resolve_timezone(settings.civil_timezone)
event_bus = EventBus()
booking_repo = BookingRepository()
config_repo = ConfigRepository()
venue_repo = VenueCatalogRepository(settings.default_venues)
timeline_repo = TimelineRepository()
venue_locks = VenueLockRegistry()

evaluator = ConflictEvaluator(
    bookings=booking_repo,
    config_provider=config_repo,
    catalog=venue_repo,
    buffer_minutes=settings.buffer_minutes,
    default_duration_minutes=settings.default_event_duration_minutes,
    zone=civil_zone,
)
booking_service = BookingService(
    repo=booking_repo, evaluator=evaluator, bus=event_bus, locks=venue_locks
)
handler_registry = HandlerRegistry(
    bus=event_bus, booking_repo=booking_repo, timeline_repo=timeline_repo
)


# ── Error mapping ─────────────────────────────────────────────────────


@app.exception_handler(InvalidInput)
def _invalid_input(request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(BookingNotFound)
def _not_found(request: Request, exc: BookingNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Booking not found"})


@app.exception_handler(BookingConflict)
def _conflict(request: Request, exc: BookingConflict) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": exc.result.conflict_message,
            "conflict": exc.result.model_dump(mode="json", by_alias=True),
        },
    )


@app.exception_handler(DependencyUnavailable)
def _unavailable(request: Request, exc: DependencyUnavailable) -> JSONResponse:
    logger.error("Dependency failure on %s: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, please try again"},
    )


# ── Caller role (supplied by the upstream auth layer) ─────────────────


def require_role(*allowed: Role):
    def _check(x_user_role: str | None = Header(default=None)) -> Role:
        if not x_user_role:
            raise HTTPException(status_code=401, detail="Unauthorized")
        try:
            role = Role(x_user_role.strip().upper())
        except ValueError:
            raise HTTPException(status_code=403, detail="Forbidden") from None
        if allowed and role not in allowed:
            raise HTTPException(
                status_code=403, detail="Forbidden - Insufficient permissions"
            )
        return role

    return _check


any_role = require_role()
managers = require_role(Role.ADMIN, Role.MANAGER)
admins = require_role(Role.ADMIN)


# ── Routes ────────────────────────────────────────────────────────────


@app.post("/events/check-conflict", response_model=ConflictResult)
def check_conflict(payload: ConflictCheckRequest) -> ConflictResult:
    """Report how a proposed booking collides with existing ones."""
    return evaluator.evaluate(payload)


@app.get("/events", response_model=list[Booking])
def list_events(date: str | None = None) -> list[Booking]:
    """Return all bookings, or only those on *date* (civil calendar day)."""
    if date is None:
        return booking_repo.list_all()
    return booking_repo.list_on(parse_civil_date(date, civil_zone))


@app.get("/events/nearest", response_model=Booking)
def nearest_event() -> Booking:
    """Return the next upcoming booking, falling back to the most recent one."""
    today = civil_day(datetime.now(civil_zone), civil_zone)
    booking = booking_repo.nearest(today)
    if booking is None:
        raise HTTPException(status_code=404, detail="No events found")
    return booking


@app.post("/events", response_model=Booking, status_code=201)
def create_event(
    payload: CreateBookingRequest, role: Role = Depends(managers)
) -> Booking:
    """Create a booking; rejected with 409 on a hard conflict."""
    return booking_service.create(payload)


@app.get("/events/{event_id}", response_model=Booking)
def get_event(event_id: str) -> Booking:
    return booking_service.get(event_id)


@app.patch("/events/{event_id}", response_model=Booking)
def update_event(
    event_id: str, payload: UpdateBookingRequest, role: Role = Depends(managers)
) -> Booking:
    """Edit a booking, re-checking conflicts without counting the booking itself."""
    return booking_service.update(event_id, payload)


@app.post("/events/{event_id}/cancel", response_model=Booking)
def cancel_event(event_id: str, role: Role = Depends(managers)) -> Booking:
    return booking_service.cancel(event_id)


@app.post("/events/{event_id}/complete", response_model=Booking)
def complete_event(
    event_id: str,
    role: Role = Depends(require_role(Role.ADMIN, Role.MANAGER, Role.STAFF)),
) -> Booking:
    return booking_service.complete(event_id)


@app.get("/events/{event_id}/timeline", response_model=list[TimelineEntry])
def get_event_timeline(event_id: str) -> list[TimelineEntry]:
    """Return the audit trail for a booking, oldest first."""
    booking_service.get(event_id)
    return timeline_repo.list_for_booking(event_id)


@app.get("/config", response_model=BookingWindowResponse)
def get_config(role: Role = Depends(any_role)) -> BookingWindowResponse:
    minutes = config_repo.get_booking_window_minutes()
    return BookingWindowResponse(
        booking_window=minutes or settings.default_event_duration_minutes
    )


@app.put("/config", response_model=BookingWindowResponse)
def update_config(
    payload: BookingWindowUpdate, role: Role = Depends(admins)
) -> BookingWindowResponse:
    previous = config_repo.get_booking_window_minutes()
    config_repo.set_booking_window_minutes(payload.booking_window)
    event_bus.publish(
        BookingWindowChanged(
            previous_minutes=previous, current_minutes=payload.booking_window
        )
    )
    return BookingWindowResponse(booking_window=payload.booking_window)


@app.get("/venues", response_model=list[str])
def list_venues() -> list[str]:
    return venue_repo.list_all()


@app.post("/venues", response_model=list[str], status_code=201)
def add_venue(payload: VenueCreateRequest, role: Role = Depends(admins)) -> list[str]:
    venue_repo.add(payload.name)
    return venue_repo.list_all()


@app.delete("/venues/{name}", response_model=list[str])
def remove_venue(name: str, role: Role = Depends(admins)) -> list[str]:
    if not venue_repo.remove(name):
        raise HTTPException(status_code=404, detail="Venue not found")
    return venue_repo.list_all()
