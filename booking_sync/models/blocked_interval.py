"""Operator-declared blocked periods."""

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

BLOCK_SUMMARY_PREFIX = "\U0001f6ab [Studio Blocked]"


class BlockStatus(str, Enum):
    """Blocked interval status enumeration."""

    ACTIVE = "Active"
    ARCHIVED = "Archived"


class BlockedIntervalInput(BaseModel):
    """Input model for declaring a blocked period."""

    reason: str = Field(default="Studio unavailable", min_length=1, max_length=200)
    start_date: date
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    @model_validator(mode="after")
    def validate_range(self) -> "BlockedIntervalInput":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be set together")
        if self.start_time is not None and self.end_time is not None:
            if self.end_time <= self.start_time:
                raise ValueError("end_time must be after start_time")
            if self.end_date not in (None, self.start_date):
                raise ValueError("time-ranged blocks cover a single date")
        return self


class BlockedInterval(BaseModel):
    """A period during which no reservations may be created."""

    block_id: str
    record_id: Optional[str] = None
    reason: str = "Studio unavailable"
    start_date: date
    end_date: date  # inclusive
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    status: BlockStatus = BlockStatus.ACTIVE
    event_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None

    @property
    def summary(self) -> str:
        return f"{BLOCK_SUMMARY_PREFIX} {self.reason}"
