"""Availability value types: intervals, business hours and query results."""

from dataclasses import dataclass
from datetime import date, time
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: Union[time, str]) -> int:
    """Convert a time-of-day (or "HH:MM" string) to minutes since midnight."""
    if isinstance(value, str):
        hours, _, minutes = value.strip().partition(":")
        return int(hours) * 60 + int(minutes or 0)
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """Convert minutes since midnight to a time-of-day."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"minutes out of range: {minutes}")
    return time(minutes // 60, minutes % 60)


def format_hhmm(value: Union[time, int]) -> str:
    """Format a time or minute offset as zero-padded HH:MM."""
    minutes = value if isinstance(value, int) else to_minutes(value)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open interval [start, end) in minutes since midnight."""

    start: int
    end: int

    @property
    def minutes(self) -> int:
        return max(0, self.end - self.start)

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and other.start < self.end

    def expand(self, minutes: int) -> "TimeInterval":
        return TimeInterval(self.start - minutes, self.end + minutes)

    def clamp(self, lower: int, upper: int) -> Optional["TimeInterval"]:
        """Clip to [lower, upper); None when nothing is left."""
        start = max(self.start, lower)
        end = min(self.end, upper)
        if start >= end:
            return None
        return TimeInterval(start, end)

    def to_dict(self) -> dict[str, str]:
        # 24:00 is a valid label for an interval ending at midnight
        return {
            "start": format_hhmm(max(0, min(self.start, MINUTES_PER_DAY))),
            "end": format_hhmm(max(0, min(self.end, MINUTES_PER_DAY))),
        }


def merge_intervals(intervals: list[TimeInterval]) -> list[TimeInterval]:
    """Merge overlapping or touching intervals into a sorted disjoint list."""
    merged: list[TimeInterval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeInterval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)
    return merged


class BusinessHours(BaseModel):
    """Opening hours for one weekday, with an optional break."""

    open: time
    close: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @model_validator(mode="after")
    def validate_hours(self) -> "BusinessHours":
        if self.close <= self.open:
            raise ValueError("close must be after open")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be set together")
        if self.break_start is not None and self.break_end is not None:
            if not (self.open <= self.break_start < self.break_end <= self.close):
                raise ValueError("break must fall inside business hours")
        return self

    @property
    def open_minutes(self) -> int:
        return to_minutes(self.open)

    @property
    def close_minutes(self) -> int:
        return to_minutes(self.close)

    @property
    def break_interval(self) -> Optional[TimeInterval]:
        if self.break_start is None or self.break_end is None:
            return None
        return TimeInterval(to_minutes(self.break_start), to_minutes(self.break_end))


class WeeklySchedule(BaseModel):
    """Business hours keyed by weekday (0 = Monday); None means closed."""

    days: dict[int, Optional[BusinessHours]] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "WeeklySchedule":
        """Mon-Sat 08:00-20:00 with a 12:00-13:00 break, Sunday 13:00-20:00."""
        weekday = BusinessHours(
            open=time(8, 0),
            close=time(20, 0),
            break_start=time(12, 0),
            break_end=time(13, 0),
        )
        days: dict[int, Optional[BusinessHours]] = {day: weekday for day in range(6)}
        days[6] = BusinessHours(open=time(13, 0), close=time(20, 0))
        return cls(days=days)

    def hours_for(self, day: date) -> Optional[BusinessHours]:
        return self.days.get(day.weekday())


class SlotQueryResult(BaseModel):
    """Valid start times for one day plus the figures shown next to them."""

    day: date
    duration_minutes: int
    available_slots: list[str] = Field(default_factory=list)
    total_slots: int = 0
    bookable_slots: int = 0
    busy_intervals: list[dict[str, str]] = Field(default_factory=list)
    closed: bool = False
    fully_blocked: bool = False
    outside_window: bool = False
    using_fallback_data: bool = False


class DateCapacity(BaseModel):
    """Remaining session capacity for one date."""

    day: date
    capacity: int
    fully_blocked: bool = False
    closed: bool = False
