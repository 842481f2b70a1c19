"""Slot calculation for a single business day.

Every busy interval is widened by the buffer on both sides and clipped to
business hours. A start time is offered when the session itself fits in the
gaps that remain. Break periods are closed time but get no buffer.
"""

from datetime import date, time
from typing import Iterable, Optional, Union

from booking_sync.models.availability import (
    BusinessHours,
    TimeInterval,
    WeeklySchedule,
    from_minutes,
    merge_intervals,
    to_minutes,
)

DEFAULT_GRANULARITY_MINUTES = 15
DEFAULT_BUFFER_MINUTES = 30


def expand_busy_intervals(
    busy: Iterable[TimeInterval],
    buffer_minutes: int,
    open_minutes: int,
    close_minutes: int,
) -> list[TimeInterval]:
    """Widen each busy interval by the buffer, clip to hours and merge."""
    expanded = []
    for interval in busy:
        clipped = interval.expand(buffer_minutes).clamp(open_minutes, close_minutes)
        if clipped is not None:
            expanded.append(clipped)
    return merge_intervals(expanded)


def _closed_intervals(
    busy: Iterable[TimeInterval],
    buffer_minutes: int,
    open_minutes: int,
    close_minutes: int,
    breaks: Iterable[TimeInterval],
) -> list[TimeInterval]:
    closed = expand_busy_intervals(busy, buffer_minutes, open_minutes, close_minutes)
    for interval in breaks:
        clipped = interval.clamp(open_minutes, close_minutes)
        if clipped is not None:
            closed.append(clipped)
    return merge_intervals(closed)


def compute_slots(
    business_open: Union[time, str],
    business_close: Union[time, str],
    granularity_minutes: int,
    session_duration: int,
    busy_intervals: Iterable[TimeInterval],
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
    breaks: Iterable[TimeInterval] = (),
) -> list[time]:
    """
    Compute valid session start times for one day.

    Args:
        business_open: Opening time
        business_close: Closing time
        granularity_minutes: Step between candidate start times
        session_duration: Session length in minutes
        busy_intervals: Raw occupied intervals (bookings, events, blocks)
        buffer_minutes: Idle time required on both sides of each busy interval
        breaks: Closed periods inside business hours (no buffer applied)

    Returns:
        Ordered start times whose [start, start + duration) fits before closing
        and avoids every buffered busy interval
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")
    if session_duration <= 0:
        raise ValueError("session_duration must be positive")

    open_minutes = to_minutes(business_open)
    close_minutes = to_minutes(business_close)
    if session_duration > close_minutes - open_minutes:
        return []

    closed = _closed_intervals(
        busy_intervals, buffer_minutes, open_minutes, close_minutes, breaks
    )

    slots = []
    for start in range(open_minutes, close_minutes - session_duration + 1, granularity_minutes):
        candidate = TimeInterval(start, start + session_duration)
        if not any(candidate.overlaps(interval) for interval in closed):
            slots.append(from_minutes(start))
    return slots


def estimate_capacity(
    business_open: Union[time, str],
    business_close: Union[time, str],
    session_duration: int,
    busy_intervals: Iterable[TimeInterval],
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
    breaks: Iterable[TimeInterval] = (),
) -> int:
    """Free minutes left in the day divided by (duration + buffer), floored."""
    if session_duration <= 0:
        raise ValueError("session_duration must be positive")

    open_minutes = to_minutes(business_open)
    close_minutes = to_minutes(business_close)
    if close_minutes <= open_minutes:
        return 0

    closed = _closed_intervals(
        busy_intervals, buffer_minutes, open_minutes, close_minutes, breaks
    )
    free_minutes = (close_minutes - open_minutes) - sum(i.minutes for i in closed)
    if free_minutes <= 0:
        return 0
    return free_minutes // (session_duration + buffer_minutes)


def count_grid_points(
    business_open: Union[time, str],
    business_close: Union[time, str],
    granularity_minutes: int,
) -> int:
    """Number of grid times from open to close inclusive."""
    span = to_minutes(business_close) - to_minutes(business_open)
    if span < 0 or granularity_minutes <= 0:
        return 0
    return span // granularity_minutes + 1


class SlotCalculator:
    """Applies the slot rules to dates using a weekly schedule."""

    def __init__(
        self,
        schedule: Optional[WeeklySchedule] = None,
        granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
        buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
    ):
        self.schedule = schedule or WeeklySchedule.default()
        self.granularity_minutes = granularity_minutes
        self.buffer_minutes = buffer_minutes

    def hours_for(self, day: date) -> Optional[BusinessHours]:
        return self.schedule.hours_for(day)

    def day_slots(
        self,
        day: date,
        duration: int,
        busy: Iterable[TimeInterval],
        not_before: Optional[int] = None,
    ) -> list[time]:
        """Start times for a date; ``not_before`` (minutes) drops earlier starts."""
        hours = self.hours_for(day)
        if hours is None:
            return []
        return compute_slots(
            hours.open,
            hours.close,
            self.granularity_minutes,
            duration,
            busy,
            buffer_minutes=self.buffer_minutes,
            breaks=_breaks(hours, not_before),
        )

    def day_capacity(
        self,
        day: date,
        duration: int,
        busy: Iterable[TimeInterval],
        not_before: Optional[int] = None,
    ) -> int:
        hours = self.hours_for(day)
        if hours is None:
            return 0
        return estimate_capacity(
            hours.open,
            hours.close,
            duration,
            busy,
            buffer_minutes=self.buffer_minutes,
            breaks=_breaks(hours, not_before),
        )

    def day_total_slots(self, day: date) -> int:
        hours = self.hours_for(day)
        if hours is None:
            return 0
        return count_grid_points(hours.open, hours.close, self.granularity_minutes)

    def is_on_grid(self, day: date, start: time) -> bool:
        """Check that a start time falls on the slot grid inside business hours."""
        hours = self.hours_for(day)
        if hours is None:
            return False
        offset = to_minutes(start) - hours.open_minutes
        return offset >= 0 and offset % self.granularity_minutes == 0


def _breaks(hours: BusinessHours, not_before: Optional[int] = None) -> list[TimeInterval]:
    breaks = []
    if hours.break_interval is not None:
        breaks.append(hours.break_interval)
    if not_before is not None and not_before > hours.open_minutes:
        # Lead-time cutoff: closed, but without buffer
        breaks.append(TimeInterval(hours.open_minutes, not_before))
    return breaks
