from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from app.services.civil_time import DEFAULT_CIVIL_TIMEZONE, resolve_timezone

DEFAULT_VENUES = ("Maimoon Hall", "Qutbi Hall", "Fakhri Hall", "Najmi Hall")


def _parse_venues(raw: str) -> tuple[str, ...]:
    # DEFAULT_VENUES is a comma-separated list; blanks and case-insensitive
    # duplicates are dropped, first spelling wins.
    seen: set[str] = set()
    result: list[str] = []
    for part in raw.split(","):
        name = part.strip()
        if not name or name.casefold() in seen:
            continue
        seen.add(name.casefold())
        result.append(name)
    return tuple(result)


def _int_env(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True)
class Settings:
    civil_timezone: str = DEFAULT_CIVIL_TIMEZONE

    # Preparation time required before every booking on a shared venue.
    buffer_minutes: int = 120

    # Used when no booking window has been configured by an administrator.
    default_event_duration_minutes: int = 60

    default_venues: tuple[str, ...] = DEFAULT_VENUES
    log_level: str = "INFO"


def load_settings(dotenv_path: str | None = None) -> Settings:
    # A .env file never overrides variables already set in the environment.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    civil_timezone = os.getenv("CIVIL_TIMEZONE", DEFAULT_CIVIL_TIMEZONE).strip()
    resolve_timezone(civil_timezone)

    raw_venues = os.getenv("DEFAULT_VENUES")
    default_venues = _parse_venues(raw_venues) if raw_venues is not None else DEFAULT_VENUES

    return Settings(
        civil_timezone=civil_timezone,
        buffer_minutes=_int_env("BUFFER_MINUTES", 120, minimum=0),
        default_event_duration_minutes=_int_env(
            "DEFAULT_EVENT_DURATION_MINUTES", 60, minimum=1
        ),
        default_venues=default_venues,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
