"""Availability queries backed by the external calendar.

The calendar is the shared view of the studio's time: booking events, staff
appointments and operator blocks all live there, so slot computation reads
busy time from it rather than from the ledger.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Optional

from booking_sync.logging import get_logger
from booking_sync.models.availability import (
    DateCapacity,
    SlotQueryResult,
    TimeInterval,
    format_hhmm,
    to_minutes,
)
from booking_sync.models.calendar_event import CalendarEvent
from booking_sync.models.errors import BookingValidationError, CalendarError
from booking_sync.services.slot_calculator import SlotCalculator
from booking_sync.storage.calendar_client import CalendarClient

logger = get_logger(__name__)

MAX_BATCH_DATES = 62


class AvailabilityService:
    """Single-day slot lists and multi-day capacity figures."""

    def __init__(
        self,
        calendar: CalendarClient,
        calculator: SlotCalculator,
        tz: tzinfo,
        min_session_minutes: int = 45,
        lead_time_hours: int = 2,
        scheduling_window_days: int = 90,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.calendar = calendar
        self.calculator = calculator
        self.tz = tz
        self.min_session_minutes = min_session_minutes
        self.lead_time = timedelta(hours=lead_time_hours)
        self.scheduling_window_days = scheduling_window_days
        self._clock = clock or (lambda: datetime.now(tz))

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def validate_duration(self, duration: int) -> None:
        if duration < self.min_session_minutes:
            raise BookingValidationError(
                f"Sessions must be at least {self.min_session_minutes} minutes"
            )
        if duration > 24 * 60:
            raise BookingValidationError("Session duration is longer than a day")

    def is_within_window(self, day: date) -> bool:
        today = self.now().date()
        return today <= day <= today + timedelta(days=self.scheduling_window_days)

    def not_before(self, day: date) -> Optional[int]:
        """Earliest start (minutes) allowed on ``day`` by the lead time.

        Returns None when the lead time does not reach into ``day`` and a value
        past midnight when the whole day is already too soon.
        """
        cutoff = self.now() + self.lead_time
        if day > cutoff.date():
            return None
        if day < cutoff.date():
            return 24 * 60
        return to_minutes(cutoff.time()) + (1 if cutoff.second or cutoff.microsecond else 0)

    async def fetch_events(self, first_day: date, last_day: date) -> tuple[list[CalendarEvent], bool]:
        """One calendar listing covering [first_day, last_day]; (events, using_fallback)."""
        if not self.calendar.configured:
            logger.warning("availability_calendar_not_configured")
            return [], True

        start = datetime.combine(first_day, time(0, 0), tzinfo=self.tz)
        end = datetime.combine(last_day + timedelta(days=1), time(0, 0), tzinfo=self.tz)
        try:
            return await self.calendar.list_events(start, end), False
        except CalendarError as e:
            logger.warning("availability_calendar_unavailable", error=str(e))
            return [], True

    def busy_on(
        self,
        day: date,
        events: list[CalendarEvent],
        exclude_booking_id: Optional[str] = None,
    ) -> tuple[list[TimeInterval], bool]:
        """Busy intervals for ``day`` and whether it is fully blocked."""
        fully_blocked = any(event.blocks_whole_day(day) for event in events)
        busy = []
        for event in events:
            if exclude_booking_id and event.embedded_booking_id == exclude_booking_id:
                continue
            interval = event.busy_interval_on(day, self.tz)
            if interval is not None:
                busy.append(interval)
        return busy, fully_blocked

    async def busy_for_day(
        self, day: date, exclude_booking_id: Optional[str] = None
    ) -> tuple[list[TimeInterval], bool, bool]:
        """(busy intervals, fully blocked, using fallback data) for one date."""
        events, fallback = await self.fetch_events(day, day)
        busy, fully_blocked = self.busy_on(day, events, exclude_booking_id)
        return busy, fully_blocked, fallback

    async def get_day_availability(
        self, day: date, duration: int, admin: bool = False
    ) -> SlotQueryResult:
        """
        Valid start times for one date.

        Admin queries skip the lead-time and scheduling-window rules.
        """
        self.validate_duration(duration)
        result = SlotQueryResult(day=day, duration_minutes=duration)

        if self.calculator.hours_for(day) is None:
            result.closed = True
            return result
        result.total_slots = self.calculator.day_total_slots(day)

        if not admin and not self.is_within_window(day):
            result.outside_window = True
            return result

        busy, fully_blocked, fallback = await self.busy_for_day(day)
        result.using_fallback_data = fallback
        result.busy_intervals = [interval.to_dict() for interval in sorted(busy)]
        if fully_blocked:
            result.fully_blocked = True
            return result

        not_before = None if admin else self.not_before(day)
        slots = self.calculator.day_slots(day, duration, busy, not_before=not_before)
        result.available_slots = [format_hhmm(slot) for slot in slots]
        result.bookable_slots = len(slots)

        logger.debug(
            "availability_computed",
            day=day.isoformat(),
            duration=duration,
            available=len(slots),
            busy=len(busy),
            fallback=fallback,
        )
        return result

    async def get_batch_capacity(self, days: list[date], duration: int) -> list[DateCapacity]:
        """Remaining capacity for many dates from a single calendar listing."""
        self.validate_duration(duration)
        if not days:
            return []
        if len(days) > MAX_BATCH_DATES:
            raise BookingValidationError(f"At most {MAX_BATCH_DATES} dates per request")

        events, fallback = await self.fetch_events(min(days), max(days))
        results = []
        for day in days:
            if self.calculator.hours_for(day) is None:
                results.append(DateCapacity(day=day, capacity=0, closed=True))
                continue
            if not self.is_within_window(day):
                results.append(DateCapacity(day=day, capacity=0))
                continue

            busy, fully_blocked = self.busy_on(day, events)
            if fully_blocked:
                results.append(DateCapacity(day=day, capacity=0, fully_blocked=True))
                continue

            capacity = self.calculator.day_capacity(
                day, duration, busy, not_before=self.not_before(day)
            )
            results.append(DateCapacity(day=day, capacity=capacity))

        logger.debug(
            "batch_capacity_computed",
            dates=len(days),
            events=len(events),
            fallback=fallback,
        )
        return results
