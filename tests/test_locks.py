"""Tests for the venue / booking lock registry."""

from __future__ import annotations

import threading
import time as _time
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.domain.models import Venue
from app.services.locks import VenueLockRegistry


def _venues(*names: str) -> list[Venue]:
    return [Venue(n) for n in names]


def test_locks_are_dropped_after_release():
    locks = VenueLockRegistry()

    with locks.hold(_venues("Hall A", "Typo Hall")):
        assert len(locks) == 2
    with locks.hold_booking("b1"):
        assert len(locks) == 1

    assert len(locks) == 0


def test_lock_is_dropped_when_body_raises():
    locks = VenueLockRegistry()

    with pytest.raises(RuntimeError):
        with locks.hold(_venues("Hall A")):
            raise RuntimeError("boom")

    assert len(locks) == 0
    with locks.hold(_venues("Hall A")):
        pass


def test_bypass_venues_are_not_locked():
    locks = VenueLockRegistry()

    with locks.hold(_venues("house", " Self ")):
        assert len(locks) == 0


def test_same_venue_in_any_spelling_is_serialized():
    locks = VenueLockRegistry()
    inside = 0
    overlap = []
    count_guard = threading.Lock()

    def worker(name: str):
        nonlocal inside
        with locks.hold(_venues(name)):
            with count_guard:
                inside += 1
                overlap.append(inside)
            _time.sleep(0.02)
            with count_guard:
                inside -= 1

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(worker, ["Hall A", "hall a", " HALL A ", "Hall A"]))

    assert max(overlap) == 1
    assert len(locks) == 0


def test_overlapping_venue_sets_do_not_deadlock():
    locks = VenueLockRegistry()

    def worker(names):
        for _ in range(20):
            with locks.hold(_venues(*names)):
                pass

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(worker, ("Hall A", "Hall B")),
            pool.submit(worker, ("Hall B", "Hall A")),
        ]
        for future in futures:
            future.result(timeout=5)

    assert len(locks) == 0
