"""Per-venue and per-booking mutual exclusion around the booking write paths."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from app.domain.models import Venue


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class VenueLockRegistry:
    """Hands out one lock per venue key and one per booking id.

    ``hold`` acquires the locks for several venues in sorted key order so two
    requests touching overlapping venue sets cannot deadlock. Bypass venues are
    never locked. ``hold_booking`` serializes writes to a single booking and is
    always taken before any venue lock.

    A lock only lives in the registry while somebody holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._venues: dict[str, _Slot] = {}
        self._bookings: dict[str, _Slot] = {}

    def _checkout(self, table: dict[str, _Slot], key: str) -> _Slot:
        with self._guard:
            slot = table.get(key)
            if slot is None:
                slot = table[key] = _Slot()
            slot.users += 1
            return slot

    def _checkin(self, table: dict[str, _Slot], key: str, slot: _Slot) -> None:
        with self._guard:
            slot.users -= 1
            if slot.users == 0:
                del table[key]

    @contextmanager
    def _hold(self, table: dict[str, _Slot], keys: list[str]) -> Iterator[None]:
        held: list[tuple[str, _Slot]] = []
        try:
            for key in keys:
                slot = self._checkout(table, key)
                try:
                    slot.lock.acquire()
                except BaseException:
                    self._checkin(table, key, slot)
                    raise
                held.append((key, slot))
            yield
        finally:
            for key, slot in reversed(held):
                slot.lock.release()
                self._checkin(table, key, slot)

    @contextmanager
    def hold(self, venues: Iterable[Venue]) -> Iterator[None]:
        keys = sorted({v.key for v in venues if not v.is_bypass})
        with self._hold(self._venues, keys):
            yield

    @contextmanager
    def hold_booking(self, booking_id: str) -> Iterator[None]:
        with self._hold(self._bookings, [booking_id]):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._venues) + len(self._bookings)
