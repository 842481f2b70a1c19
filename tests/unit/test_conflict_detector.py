"""Unit tests for write-time conflict detection."""

from datetime import time

import pytest

from booking_sync.models.availability import TimeInterval
from booking_sync.models.reservation import ReservationStatus
from booking_sync.services.conflict_detector import (
    find_conflicts,
    has_conflict,
    intervals_conflict,
)

EXISTING = [TimeInterval(600, 645)]  # 10:00-10:45


@pytest.mark.parametrize(
    "candidate,expected",
    [
        ("08:45", False),  # ends 09:30, a full buffer before 10:00
        ("09:00", True),
        ("09:15", True),
        ("10:00", True),
        ("10:30", True),
        ("11:00", True),
        ("11:14", True),
        ("11:15", False),  # starts a full buffer after 10:45
        ("14:00", False),
    ],
)
def test_buffered_conflict_around_existing_session(candidate, expected):
    assert has_conflict(candidate, 45, EXISTING, buffer_minutes=30) is expected


def test_conflict_is_symmetric():
    intervals = [
        TimeInterval(480, 525),
        TimeInterval(540, 600),
        TimeInterval(600, 645),
        TimeInterval(660, 720),
        TimeInterval(675, 735),
        TimeInterval(900, 1000),
    ]
    for a in intervals:
        for b in intervals:
            assert intervals_conflict(a, b, 30) == intervals_conflict(b, a, 30)


def test_zero_buffer_allows_back_to_back():
    assert not has_conflict(time(10, 45), 45, EXISTING, buffer_minutes=0)
    assert has_conflict(time(10, 44), 45, EXISTING, buffer_minutes=0)


def test_accepts_minutes_as_candidate_start():
    assert has_conflict(620, 30, EXISTING, buffer_minutes=0)


def test_cancelled_reservations_do_not_conflict(make_reservation):
    cancelled = make_reservation(status=ReservationStatus.CANCELLED)

    assert not has_conflict("10:00", 45, [cancelled], buffer_minutes=30)


def test_find_conflicts_excludes_edited_booking(make_reservation):
    own = make_reservation(booking_id="MMRS-2025011410-AAAA1111", start_time=time(10, 0))
    other = make_reservation(booking_id="MMRS-2025011411-BBBB2222", start_time=time(11, 15))
    candidate = TimeInterval(615, 660)  # 10:15-11:00, within a buffer of 11:15

    conflicts = find_conflicts(candidate, [own, other], 30, exclude_booking_id=own.booking_id)

    assert [r.booking_id for r in conflicts] == [other.booking_id]
