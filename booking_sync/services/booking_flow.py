"""Booking flow: create, look up, edit and cancel reservations."""

from datetime import date, time, tzinfo
from typing import Optional

from booking_sync.logging import get_logger
from booking_sync.logging.audit import AuditEventType, AuditLogger
from booking_sync.models.availability import TimeInterval, to_minutes
from booking_sync.models.errors import (
    BookingValidationError,
    CalendarError,
    LedgerError,
    LedgerNotConfiguredError,
    NotFoundError,
    SlotConflictError,
)
from booking_sync.models.reservation import (
    Reservation,
    ReservationChanges,
    ReservationInput,
    ReservationStatus,
)
from booking_sync.security.permissions import PermissionChecker
from booking_sync.services.availability import AvailabilityService
from booking_sync.services.booking_ids import DEFAULT_PREFIX, generate_booking_id
from booking_sync.services.conflict_detector import find_conflicts, intervals_conflict
from booking_sync.services.notifications import NotificationService
from booking_sync.services.reconciliation import ReconciliationEngine
from booking_sync.storage.repository_base import BookingRepository

logger = get_logger(__name__)

ADMIN_ACTOR = "admin"


class BookingService:
    """Write paths for reservations, with calendar mirroring after each ledger write."""

    def __init__(
        self,
        bookings: BookingRepository,
        availability: AvailabilityService,
        engine: ReconciliationEngine,
        permissions: PermissionChecker,
        notifications: NotificationService,
        tz: tzinfo,
        buffer_minutes: int = 30,
        booking_id_prefix: str = DEFAULT_PREFIX,
    ):
        """Initialize booking service."""
        self.bookings = bookings
        self.availability = availability
        self.engine = engine
        self.permissions = permissions
        self.notifications = notifications
        self.tz = tz
        self.buffer_minutes = buffer_minutes
        self.booking_id_prefix = booking_id_prefix

    @property
    def calculator(self):
        return self.availability.calculator

    def validate_schedule(
        self, day: date, start: time, duration: int, admin: bool = False
    ) -> None:
        """
        Check a requested session against business rules.

        Admins may book inside the lead time and beyond the scheduling window;
        hours, grid and breaks apply to everyone.

        Raises:
            BookingValidationError: The slot can never be booked as requested
        """
        self.availability.validate_duration(duration)

        hours = self.calculator.hours_for(day)
        if hours is None:
            raise BookingValidationError(f"The studio is closed on {day:%A}s")
        if not self.calculator.is_on_grid(day, start):
            raise BookingValidationError(
                f"Start time must be on a {self.calculator.granularity_minutes}-minute boundary "
                f"within business hours"
            )

        start_minutes = to_minutes(start)
        candidate = TimeInterval(start_minutes, start_minutes + duration)
        if candidate.end > hours.close_minutes:
            raise BookingValidationError("Session would run past closing time")
        if hours.break_interval is not None and candidate.overlaps(hours.break_interval):
            raise BookingValidationError("Session overlaps the studio break")

        if admin:
            return
        if not self.availability.is_within_window(day):
            raise BookingValidationError(
                f"Bookings are accepted up to {self.availability.scheduling_window_days} days ahead"
            )
        not_before = self.availability.not_before(day)
        if not_before is not None and start_minutes < not_before:
            raise BookingValidationError("This time is too soon to book")

    async def _assert_slot_free(
        self, day: date, candidate: TimeInterval, exclude_booking_id: Optional[str] = None
    ) -> None:
        """Re-check the slot against the ledger and the calendar just before writing."""
        same_day = await self.bookings.list_for_date(day)
        conflicts = find_conflicts(
            candidate, same_day, self.buffer_minutes, exclude_booking_id=exclude_booking_id
        )
        if conflicts:
            ids = [reservation.booking_id for reservation in conflicts]
            logger.info("booking_conflict_detected", day=day.isoformat(), conflicting_ids=ids)
            raise SlotConflictError(conflicting_ids=ids)

        busy, fully_blocked, _ = await self.availability.busy_for_day(
            day, exclude_booking_id=exclude_booking_id
        )
        if fully_blocked:
            raise SlotConflictError("The studio is unavailable on this date")
        if any(intervals_conflict(candidate, interval, self.buffer_minutes) for interval in busy):
            logger.info("calendar_conflict_detected", day=day.isoformat())
            raise SlotConflictError()

    async def create_booking(
        self,
        data: ReservationInput,
        client_ip: Optional[str] = None,
        admin: bool = False,
    ) -> Reservation:
        """
        Create a reservation in the ledger and mirror it to the calendar.

        The ledger record is the booking: once it is written, a calendar
        failure is logged and left for the next sync to repair.

        Raises:
            LedgerNotConfiguredError: No ledger credentials
            BookingValidationError: Schedule breaks business rules
            SlotConflictError: Slot was taken since availability was shown
        """
        if not self.bookings.configured:
            raise LedgerNotConfiguredError()

        duration = data.service.duration_minutes
        self.validate_schedule(data.session_date, data.start_time, duration, admin=admin)
        start_minutes = to_minutes(data.start_time)
        await self._assert_slot_free(
            data.session_date, TimeInterval(start_minutes, start_minutes + duration)
        )

        reservation = Reservation(
            booking_id=generate_booking_id(
                data.session_date, data.start_time.hour, prefix=self.booking_id_prefix
            ),
            customer=data.customer,
            service=data.service,
            session_date=data.session_date,
            start_time=data.start_time,
            status=ReservationStatus.PENDING,
            session_price=data.session_price,
            addons_total=data.addons_total,
            grand_total=data.grand_total,
        )
        created = await self.bookings.create(reservation)
        logger.info(
            "booking_created",
            booking_id=created.booking_id,
            record_id=created.record_id,
            day=created.session_date.isoformat(),
            time=created.start_hhmm,
            duration=duration,
        )

        try:
            event_id = await self.engine.ensure_event_for_reservation(created)
            created = created.model_copy(update={"event_id": event_id})
        except (CalendarError, LedgerError) as e:
            logger.warning(
                "booking_calendar_mirror_failed",
                booking_id=created.booking_id,
                error=str(e),
            )

        AuditLogger.log_booking_created(
            ADMIN_ACTOR if admin else created.customer.email,
            created.booking_id,
            created.session_date.isoformat(),
            created.start_hhmm,
            client_ip=client_ip,
        )

        if self.notifications.configured:
            subject, html = self.notifications.booking_confirmation(created, self.tz)
            self.notifications.send_in_background(created.customer.email, subject, html)

        return created

    async def get_booking(
        self, booking_id: str, email: str, client_ip: Optional[str] = None
    ) -> Reservation:
        """Fetch a booking by identifier and owner email."""
        return await self.permissions.verify_owner(booking_id, email, client_ip=client_ip)

    async def search_bookings(self, email: str, client_ip: Optional[str] = None) -> list[Reservation]:
        """
        A customer's bookings, oldest session first.

        Booking IDs are the ownership proof, so they are emailed to the
        address instead of being returned to the caller.
        """
        email = email.strip().lower()
        reservations = sorted(
            await self.bookings.find_by_email(email), key=lambda r: (r.session_date, r.start_time)
        )
        AuditLogger.log_event(
            event_type=AuditEventType.BOOKING_SEARCHED,
            actor=email,
            resource_id="bookings",
            action="Bookings searched by email",
            client_ip=client_ip,
            metadata={"results": len(reservations)},
        )
        if reservations and self.notifications.configured:
            subject, html = self.notifications.booking_ids_message(reservations, self.tz)
            self.notifications.send_in_background(email, subject, html)
        return reservations

    async def _load_for_change(
        self,
        booking_id: str,
        email: Optional[str],
        admin: bool,
        client_ip: Optional[str],
    ) -> Reservation:
        if admin:
            reservation = await self.bookings.get(booking_id.strip())
            if reservation is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            return reservation

        if not email:
            raise BookingValidationError("Email is required")
        reservation = await self.permissions.verify_owner(booking_id, email, client_ip=client_ip)
        await self.permissions.require_verified(reservation, email, client_ip=client_ip)
        return reservation

    async def update_booking(
        self,
        booking_id: str,
        changes: ReservationChanges,
        email: Optional[str] = None,
        admin: bool = False,
        client_ip: Optional[str] = None,
    ) -> Reservation:
        """
        Apply edits to a booking and mirror them to the calendar.

        Customers must hold a passcode grant and may only reschedule or edit
        contact details of an active booking. Admins may also change status.
        """
        if changes.is_empty():
            raise BookingValidationError("No changes supplied")

        reservation = await self._load_for_change(booking_id, email, admin, client_ip)
        if not admin:
            if changes.status is not None or changes.email is not None:
                AuditLogger.log_permission_denied(
                    email, reservation.booking_id, "change_status_or_email", client_ip=client_ip
                )
                raise BookingValidationError("Only the studio can change status or email")
            if not reservation.is_active:
                raise BookingValidationError("Cancelled bookings cannot be changed")

        updated = changes.apply_to(reservation)
        # Reactivating a cancelled booking claims its slot again
        if updated.is_active and (changes.reschedules or not reservation.is_active):
            self.validate_schedule(
                updated.session_date, updated.start_time, updated.duration_minutes, admin=admin
            )
            await self._assert_slot_free(
                updated.session_date, updated.interval, exclude_booking_id=updated.booking_id
            )

        saved = await self.bookings.update(updated)

        try:
            if saved.is_active:
                event_id = await self.engine.update_event_for_reservation(saved)
                saved = saved.model_copy(update={"event_id": event_id})
            elif reservation.is_active:
                await self.engine.remove_event_for_reservation(saved)
                saved = saved.model_copy(update={"event_id": None})
        except (CalendarError, LedgerError) as e:
            logger.warning(
                "booking_calendar_update_failed",
                booking_id=saved.booking_id,
                error=str(e),
            )

        AuditLogger.log_booking_updated(
            ADMIN_ACTOR if admin else email,
            saved.booking_id,
            changes.model_dump(mode="json", exclude_none=True),
            client_ip=client_ip,
        )
        return saved

    async def cancel_booking(
        self,
        booking_id: str,
        email: Optional[str] = None,
        admin: bool = False,
        reason: str = "",
        client_ip: Optional[str] = None,
    ) -> Reservation:
        """
        Cancel a booking and remove its calendar event.

        The ledger record is kept. Cancelling an already-cancelled booking
        changes nothing.
        """
        reservation = await self._load_for_change(booking_id, email, admin, client_ip)
        if not reservation.is_active:
            logger.info("booking_already_cancelled", booking_id=reservation.booking_id)
            return reservation

        await self.bookings.update_status(reservation, ReservationStatus.CANCELLED)
        cancelled = reservation.model_copy(update={"status": ReservationStatus.CANCELLED})

        try:
            await self.engine.remove_event_for_reservation(cancelled)
            cancelled = cancelled.model_copy(update={"event_id": None})
        except (CalendarError, LedgerError) as e:
            logger.warning(
                "booking_calendar_delete_failed",
                booking_id=cancelled.booking_id,
                event_id=cancelled.event_id,
                error=str(e),
            )

        AuditLogger.log_booking_cancelled(
            ADMIN_ACTOR if admin else email,
            cancelled.booking_id,
            reason or ("Cancelled by studio" if admin else "Cancelled by customer"),
            client_ip=client_ip,
        )
        return cancelled
