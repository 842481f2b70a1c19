"""Write-time conflict detection between reservations on the same day."""

from datetime import time
from typing import Iterable, Optional, Union

from booking_sync.models.availability import TimeInterval, to_minutes
from booking_sync.models.reservation import Reservation

Occupied = Union[Reservation, TimeInterval]


def intervals_conflict(a: TimeInterval, b: TimeInterval, buffer_minutes: int) -> bool:
    """Two sessions conflict unless a full buffer separates them.

    ``a.start < b.end + buffer and a.end + buffer > b.start``; the formula is
    symmetric in ``a`` and ``b``.
    """
    return a.start < b.end + buffer_minutes and a.end + buffer_minutes > b.start


def _as_interval(item: Occupied) -> TimeInterval:
    return item.interval if isinstance(item, Reservation) else item


def has_conflict(
    candidate_start: Union[time, str, int],
    duration: int,
    existing_same_day: Iterable[Occupied],
    buffer_minutes: int,
) -> bool:
    """Check a candidate session against the day's existing reservations."""
    start = candidate_start if isinstance(candidate_start, int) else to_minutes(candidate_start)
    candidate = TimeInterval(start, start + duration)
    for item in existing_same_day:
        if isinstance(item, Reservation) and not item.is_active:
            continue
        if intervals_conflict(candidate, _as_interval(item), buffer_minutes):
            return True
    return False


def find_conflicts(
    candidate: TimeInterval,
    reservations: Iterable[Reservation],
    buffer_minutes: int,
    exclude_booking_id: Optional[str] = None,
) -> list[Reservation]:
    """Return active reservations that clash with the candidate.

    The reservation being rescheduled is passed as ``exclude_booking_id`` so it
    does not conflict with itself.
    """
    return [
        reservation
        for reservation in reservations
        if reservation.is_active
        and reservation.booking_id != exclude_booking_id
        and intervals_conflict(candidate, reservation.interval, buffer_minutes)
    ]
