"""Reconciliation between the booking ledger and the external calendar.

The ledger decides whether a booking exists, who owns it and its status.
The calendar decides when it happens: staff move sessions by dragging
events, so on date/time the calendar wins. Deleting a booking's event on the
calendar is read as a cancellation.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Optional

from booking_sync.logging import get_logger
from booking_sync.logging.audit import AuditLogger
from booking_sync.models.availability import format_hhmm
from booking_sync.models.calendar_event import CalendarEvent
from booking_sync.models.errors import (
    BookingSyncError,
    CalendarError,
    CalendarNotConfiguredError,
    LedgerError,
)
from booking_sync.models.reconciliation import (
    DriftEntry,
    DriftKind,
    ReconciliationReport,
    SyncReport,
)
from booking_sync.models.reservation import Reservation, ReservationStatus
from booking_sync.services.conflict_detector import intervals_conflict
from booking_sync.services.event_builder import booking_event_body, booking_patch_body
from booking_sync.storage.calendar_client import CalendarClient
from booking_sync.storage.repository_base import BookingRepository

logger = get_logger(__name__)

# Push-notification resource states
STATE_SYNC = "sync"
STATE_EXISTS = "exists"
STATE_NOT_EXISTS = "not_exists"

# Ledger-side change types
LEDGER_PAGE_CREATED = "page.created"
LEDGER_PAGE_UPDATED = "page.updated"
LEDGER_PAGE_DELETED = "page.deleted"


class ReconciliationEngine:
    """Diffs ledger state against calendar state and repairs the stale side."""

    def __init__(
        self,
        bookings: BookingRepository,
        calendar: CalendarClient,
        tz: tzinfo,
        past_days: int = 30,
        future_days: int = 90,
        buffer_minutes: int = 30,
    ):
        """
        Initialize reconciliation engine.

        Args:
            bookings: Ledger repository for reservations
            calendar: External calendar adapter
            tz: Business timezone used to compare dates and times
            past_days: Default window reaches this far back
            future_days: Default window reaches this far ahead
            buffer_minutes: Buffer used when flagging double bookings
        """
        self.bookings = bookings
        self.calendar = calendar
        self.tz = tz
        self.past_days = past_days
        self.future_days = future_days
        self.buffer_minutes = buffer_minutes

    def default_window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        now = now or datetime.now(self.tz)
        return now - timedelta(days=self.past_days), now + timedelta(days=self.future_days)

    def _day_bounds(self, day: date) -> tuple[datetime, datetime]:
        start = datetime.combine(day, time(0, 0), tzinfo=self.tz)
        return start, start + timedelta(days=1)

    # Calendar -> ledger

    async def reconcile(
        self,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        trigger: str = "manual",
    ) -> ReconciliationReport:
        """
        Compare linked reservations with calendar events in a window.

        A reservation whose event is gone is cancelled; one whose event moved
        takes the event's date and time. Running it again without outside
        changes writes nothing.

        Returns:
            Report with cancelled, updated, errors and warnings
        """
        if window_start is None or window_end is None:
            window_start, window_end = self.default_window()

        report = ReconciliationReport(window_start=window_start, window_end=window_end)
        logger.info(
            "reconciliation_started",
            trigger=trigger,
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
        )

        reservations = await self.bookings.list_linked(
            window_start.astimezone(self.tz).date(),
            window_end.astimezone(self.tz).date(),
        )
        events = await self.calendar.list_events(window_start, window_end)
        events_by_id = {event.event_id: event for event in events if not event.is_cancelled}

        for reservation in reservations:
            if not reservation.is_active or not reservation.event_id:
                continue
            report.checked += 1
            try:
                event = events_by_id.get(reservation.event_id)
                if event is None:
                    event = await self._confirm_missing_event(reservation)
                if event is None:
                    report.cancelled.append(await self._cancel_for_missing_event(reservation))
                    continue

                drift = await self.ensure_reservation_reflects_event(reservation, event)
                if drift is None:
                    report.unchanged += 1
                else:
                    report.updated.append(drift)
            except (CalendarError, LedgerError) as e:
                logger.error(
                    "reconciliation_item_failed",
                    booking_id=reservation.booking_id,
                    event_id=reservation.event_id,
                    error=str(e),
                )
                report.errors.append(
                    DriftEntry(
                        booking_id=reservation.booking_id,
                        event_id=reservation.event_id,
                        kind=DriftKind.ERROR,
                        detail=str(e),
                    )
                )

        report.warnings.extend(self._find_duplicate_events(events))
        report.warnings.extend(self._find_double_bookings(reservations, report))

        logger.info("reconciliation_completed", trigger=trigger, **report.summary())
        AuditLogger.log_reconciliation(trigger, report.summary())
        return report

    async def _confirm_missing_event(self, reservation: Reservation) -> Optional[CalendarEvent]:
        """Look up an event absent from the window listing.

        Returns the event when it still exists (it moved out of the window),
        None when it was deleted or cancelled.
        """
        try:
            event = await self.calendar.get_event(reservation.event_id)
        except CalendarError as e:
            if e.is_gone:
                return None
            raise
        return None if event.is_cancelled else event

    async def _cancel_for_missing_event(self, reservation: Reservation) -> DriftEntry:
        await self.bookings.update_status(reservation, ReservationStatus.CANCELLED)
        logger.info(
            "booking_cancelled_event_missing",
            booking_id=reservation.booking_id,
            event_id=reservation.event_id,
        )
        return DriftEntry(
            booking_id=reservation.booking_id,
            event_id=reservation.event_id,
            kind=DriftKind.EVENT_MISSING,
            previous_date=reservation.session_date.isoformat(),
            previous_time=reservation.start_hhmm,
        )

    async def ensure_reservation_reflects_event(
        self, reservation: Reservation, event: CalendarEvent
    ) -> Optional[DriftEntry]:
        """Copy the event's date/time onto the reservation when they differ."""
        local_start = event.local_start(self.tz)
        if local_start is None:
            logger.warning(
                "linked_event_without_time",
                booking_id=reservation.booking_id,
                event_id=event.event_id,
            )
            return None

        new_date = local_start.date()
        new_time = local_start.time().replace(second=0, microsecond=0, tzinfo=None)
        if new_date == reservation.session_date and format_hhmm(new_time) == reservation.start_hhmm:
            return None

        updated = reservation.model_copy(update={"session_date": new_date, "start_time": new_time})
        await self.bookings.update_schedule(updated)
        logger.info(
            "booking_rescheduled_from_calendar",
            booking_id=reservation.booking_id,
            event_id=event.event_id,
            previous=f"{reservation.session_date} {reservation.start_hhmm}",
            current=f"{new_date} {format_hhmm(new_time)}",
        )
        return DriftEntry(
            booking_id=reservation.booking_id,
            event_id=event.event_id,
            kind=DriftKind.TIME_CHANGED,
            previous_date=reservation.session_date.isoformat(),
            previous_time=reservation.start_hhmm,
            new_date=new_date.isoformat(),
            new_time=format_hhmm(new_time),
        )

    def _find_duplicate_events(self, events: list[CalendarEvent]) -> list[DriftEntry]:
        """Booking IDs embedded in more than one live event; reported, not merged."""
        by_booking: dict[str, list[str]] = defaultdict(list)
        for event in events:
            booking_id = event.embedded_booking_id
            if booking_id and not event.is_cancelled:
                by_booking[booking_id].append(event.event_id)

        warnings = []
        for booking_id, event_ids in by_booking.items():
            if len(event_ids) > 1:
                logger.warning("duplicate_calendar_events", booking_id=booking_id, event_ids=event_ids)
                warnings.append(
                    DriftEntry(
                        booking_id=booking_id,
                        kind=DriftKind.DUPLICATE_EVENT,
                        detail=", ".join(event_ids),
                    )
                )
        return warnings

    def _find_double_bookings(
        self, reservations: list[Reservation], report: ReconciliationReport
    ) -> list[DriftEntry]:
        """Active reservations that overlap after this run's corrections."""
        cancelled = {entry.booking_id for entry in report.cancelled}
        moved = {entry.booking_id: entry for entry in report.updated}

        by_day: dict[date, list[Reservation]] = defaultdict(list)
        for reservation in reservations:
            if not reservation.is_active or reservation.booking_id in cancelled:
                continue
            entry = moved.get(reservation.booking_id)
            if entry is not None:
                reservation = reservation.model_copy(
                    update={
                        "session_date": date.fromisoformat(entry.new_date),
                        "start_time": time.fromisoformat(entry.new_time),
                    }
                )
            by_day[reservation.session_date].append(reservation)

        warnings = []
        for day_reservations in by_day.values():
            day_reservations.sort(key=lambda r: r.start_time)
            for i, first in enumerate(day_reservations):
                for second in day_reservations[i + 1:]:
                    if intervals_conflict(first.interval, second.interval, self.buffer_minutes):
                        logger.warning(
                            "double_booking_detected",
                            booking_id=first.booking_id,
                            other_booking_id=second.booking_id,
                        )
                        warnings.append(
                            DriftEntry(
                                booking_id=first.booking_id,
                                kind=DriftKind.DOUBLE_BOOKED,
                                detail=second.booking_id,
                            )
                        )
        return warnings

    # Ledger -> calendar

    async def find_event_for_booking(self, reservation: Reservation) -> Optional[CalendarEvent]:
        """Search the booking's day for an event carrying its identifier.

        A failed search is logged and treated as "not found" so creation can
        proceed; duplicates that slip through surface in reconcile warnings.
        """
        day_start, day_end = self._day_bounds(reservation.session_date)
        try:
            events = await self.calendar.list_events(day_start, day_end, query=reservation.booking_id)
        except CalendarNotConfiguredError:
            raise
        except CalendarError as e:
            logger.warning(
                "calendar_duplicate_search_failed",
                booking_id=reservation.booking_id,
                error=str(e),
            )
            return None

        for event in events:
            if not event.is_cancelled and event.references_booking(reservation.booking_id):
                return event
        return None

    async def ensure_event_for_reservation(self, reservation: Reservation) -> str:
        """
        Return the calendar event for a booking, creating it only if none exists.

        Calling it repeatedly for the same booking yields the same event ID.
        The ID is written back to the ledger when it changed.
        """
        if reservation.event_id:
            try:
                event = await self.calendar.get_event(reservation.event_id)
                if not event.is_cancelled and event.references_booking(reservation.booking_id):
                    return event.event_id
            except CalendarError as e:
                if not e.is_gone:
                    raise

        existing = await self.find_event_for_booking(reservation)
        if existing is not None:
            event_id = existing.event_id
            logger.info(
                "calendar_event_reused",
                booking_id=reservation.booking_id,
                event_id=event_id,
            )
        else:
            created = await self.calendar.insert_event(booking_event_body(reservation, self.tz))
            event_id = created.event_id
            logger.info(
                "calendar_event_mirrored",
                booking_id=reservation.booking_id,
                event_id=event_id,
            )

        if event_id != reservation.event_id:
            await self.bookings.update_event_id(reservation, event_id)
        return event_id

    def _event_matches(self, reservation: Reservation, event: CalendarEvent) -> bool:
        local_start = event.local_start(self.tz)
        if local_start is None or event.end is None:
            return False
        return (
            local_start == reservation.start_at(self.tz)
            and event.end.astimezone(self.tz) == reservation.end_at(self.tz)
            and event.references_booking(reservation.booking_id)
        )

    async def update_event_for_reservation(self, reservation: Reservation) -> str:
        """Push the reservation's schedule and details onto its event."""
        if not reservation.event_id:
            return await self.ensure_event_for_reservation(reservation)

        try:
            current = await self.calendar.get_event(reservation.event_id)
            if not current.is_cancelled:
                if self._event_matches(reservation, current):
                    return current.event_id
                await self.calendar.patch_event(
                    reservation.event_id, booking_patch_body(reservation, self.tz)
                )
                return reservation.event_id
        except CalendarError as e:
            if not e.is_gone:
                raise

        logger.warning(
            "calendar_event_missing_on_update",
            booking_id=reservation.booking_id,
            event_id=reservation.event_id,
        )
        return await self.ensure_event_for_reservation(reservation.model_copy(update={"event_id": None}))

    async def remove_event_for_reservation(self, reservation: Reservation) -> bool:
        """Delete the booking's event and unlink it; True when something was deleted."""
        event_id = reservation.event_id
        if not event_id:
            stray = await self.find_event_for_booking(reservation)
            if stray is None:
                return False
            event_id = stray.event_id

        deleted = await self.calendar.delete_event(event_id)
        if reservation.event_id:
            await self.bookings.update_event_id(reservation, None)
        return deleted

    async def sync_ledger_to_calendar(
        self,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> SyncReport:
        """Mirror unlinked active bookings and remove events of cancelled ones."""
        if window_start is None or window_end is None:
            window_start, window_end = self.default_window()

        report = SyncReport()
        reservations = await self.bookings.list_in_range(
            window_start.astimezone(self.tz).date(),
            window_end.astimezone(self.tz).date(),
        )

        for reservation in reservations:
            try:
                if reservation.is_active and not reservation.event_id:
                    await self.ensure_event_for_reservation(reservation)
                    report.created += 1
                elif not reservation.is_active and reservation.event_id:
                    await self.remove_event_for_reservation(reservation)
                    report.deleted += 1
                else:
                    report.skipped += 1
            except CalendarNotConfiguredError:
                raise
            except (CalendarError, LedgerError) as e:
                logger.error(
                    "ledger_sync_item_failed",
                    booking_id=reservation.booking_id,
                    error=str(e),
                )
                report.errors.append(f"{reservation.booking_id}: {e}")

        logger.info(
            "ledger_sync_completed",
            created=report.created,
            deleted=report.deleted,
            skipped=report.skipped,
            errors=len(report.errors),
        )
        return report

    # Triggers

    async def handle_ledger_change(
        self, change_type: str, reservation: Optional[Reservation]
    ) -> dict[str, Any]:
        """Apply a ledger-side change notification to the calendar."""
        if reservation is None:
            logger.info("ledger_change_ignored", change_type=change_type, reason="record_not_found")
            return {"status": "ignored", "reason": "record_not_found"}

        booking_id = reservation.booking_id
        try:
            if change_type == LEDGER_PAGE_DELETED or (
                change_type == LEDGER_PAGE_UPDATED and not reservation.is_active
            ):
                deleted = await self.remove_event_for_reservation(reservation)
                return {"status": "success", "action": "event_deleted" if deleted else "no_event", "booking_id": booking_id}

            if change_type == LEDGER_PAGE_CREATED and reservation.is_active:
                event_id = await self.ensure_event_for_reservation(reservation)
                return {"status": "success", "action": "event_ensured", "booking_id": booking_id, "event_id": event_id}

            if change_type == LEDGER_PAGE_UPDATED:
                event_id = await self.update_event_for_reservation(reservation)
                return {"status": "success", "action": "event_updated", "booking_id": booking_id, "event_id": event_id}

        except BookingSyncError as e:
            logger.error(
                "ledger_change_processing_failed",
                change_type=change_type,
                booking_id=booking_id,
                error=str(e),
            )
            return {"status": "error", "booking_id": booking_id}

        logger.info("ledger_change_ignored", change_type=change_type, booking_id=booking_id)
        return {"status": "ignored", "change_type": change_type}

    async def handle_push_notification(
        self,
        resource_state: Optional[str],
        channel_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        message_number: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        React to a calendar push notification.

        Notifications carry no event details, only "something changed", so an
        ``exists`` state triggers a full-window reconcile.
        """
        logger.info(
            "calendar_push_received",
            resource_state=resource_state,
            channel_id=channel_id,
            resource_id=resource_id,
            message_number=message_number,
        )

        if resource_state == STATE_SYNC:
            return {"status": "ok", "action": "handshake"}

        if resource_state == STATE_NOT_EXISTS:
            logger.info("calendar_push_resource_gone", channel_id=channel_id)
            return {"status": "ok", "action": "ignored"}

        if resource_state != STATE_EXISTS:
            logger.warning("calendar_push_unknown_state", resource_state=resource_state)
            return {"status": "ok", "action": "acknowledged"}

        try:
            report = await self.reconcile(trigger="webhook")
        except BookingSyncError as e:
            logger.error("webhook_reconciliation_failed", error=str(e), exc_info=True)
            return {"status": "error", "action": "reconcile_failed"}
        return {"status": "ok", "action": "reconciled", **report.summary()}
