"""Calendar-side representation of events.

The calendar has no foreign keys, so bookings and blocks are joined to their
events through a ``Booking ID: <id>`` or ``Block ID: <id>`` line embedded in
the event description.
"""

import math
import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from pydantic import BaseModel

from booking_sync.models.availability import MINUTES_PER_DAY, TimeInterval

BOOKING_ID_LABEL = "Booking ID:"
BLOCK_ID_LABEL = "Block ID:"
BLOCKED_MARKERS = ("[BLOCKED]", "[Studio Blocked]", "\U0001f6ab")

_BOOKING_ID_PATTERN = re.compile(r"Booking ID:\s*(\S+)")
_BLOCK_ID_PATTERN = re.compile(r"Block ID:\s*(\S+)")


def booking_id_line(booking_id: str) -> str:
    return f"{BOOKING_ID_LABEL} {booking_id}"


def block_id_line(block_id: str) -> str:
    return f"{BLOCK_ID_LABEL} {block_id}"


def _parse_moment(payload: dict[str, Any]) -> tuple[Optional[datetime], Optional[date]]:
    if payload.get("dateTime"):
        return datetime.fromisoformat(payload["dateTime"].replace("Z", "+00:00")), None
    if payload.get("date"):
        return None, date.fromisoformat(payload["date"])
    return None, None


class CalendarEvent(BaseModel):
    """Uniform event shape exposed by the calendar adapter."""

    event_id: str
    summary: str = ""
    description: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day_start: Optional[date] = None
    all_day_end: Optional[date] = None  # exclusive, as the calendar reports it
    status: str = "confirmed"
    transparency: str = "opaque"

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "CalendarEvent":
        start, all_day_start = _parse_moment(payload.get("start") or {})
        end, all_day_end = _parse_moment(payload.get("end") or {})
        return cls(
            event_id=payload["id"],
            summary=payload.get("summary") or "",
            description=payload.get("description") or "",
            start=start,
            end=end,
            all_day_start=all_day_start,
            all_day_end=all_day_end,
            status=payload.get("status") or "confirmed",
            transparency=payload.get("transparency") or "opaque",
        )

    @property
    def is_all_day(self) -> bool:
        return self.all_day_start is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def is_busy(self) -> bool:
        """Free-marked and cancelled events do not block time."""
        return not self.is_cancelled and self.transparency != "transparent"

    @property
    def is_blocked_marker(self) -> bool:
        return any(marker in self.summary for marker in BLOCKED_MARKERS)

    @property
    def embedded_booking_id(self) -> Optional[str]:
        match = _BOOKING_ID_PATTERN.search(self.description)
        return match.group(1) if match else None

    @property
    def embedded_block_id(self) -> Optional[str]:
        match = _BLOCK_ID_PATTERN.search(self.description)
        return match.group(1) if match else None

    def references_booking(self, booking_id: str) -> bool:
        return booking_id_line(booking_id) in self.description

    def local_start(self, tz: tzinfo) -> Optional[datetime]:
        """Start converted to the business timezone (timed events only)."""
        if self.start is None:
            return None
        return self.start.astimezone(tz)

    def blocks_whole_day(self, day: date) -> bool:
        """All-day blocked-marker events close every date in [start, end)."""
        if not (self.is_all_day and self.is_blocked_marker and self.is_busy):
            return False
        end = self.all_day_end or (self.all_day_start + timedelta(days=1))
        return self.all_day_start <= day < end

    def busy_interval_on(self, day: date, tz: tzinfo) -> Optional[TimeInterval]:
        """Minutes of ``day`` (business timezone) occupied by this event.

        All-day events only occupy time when they carry a blocked marker;
        birthdays and reminders on the shared calendar do not close the studio.
        """
        if not self.is_busy:
            return None
        if self.is_all_day:
            if self.blocks_whole_day(day):
                return TimeInterval(0, MINUTES_PER_DAY)
            return None
        if self.start is None or self.end is None:
            return None
        day_start = datetime.combine(day, time(0, 0), tzinfo=tz)
        start = math.floor((self.start.astimezone(tz) - day_start).total_seconds() / 60)
        end = math.ceil((self.end.astimezone(tz) - day_start).total_seconds() / 60)
        return TimeInterval(start, end).clamp(0, MINUTES_PER_DAY)
