"""Permission checks: admin API key and customer proof of ownership."""

import secrets
from typing import Optional

from booking_sync.logging.audit import AuditLogger
from booking_sync.models.errors import BookingAccessError, OTPRequiredError
from booking_sync.models.reservation import Reservation
from booking_sync.services.otp import OTPService
from booking_sync.storage.repository_base import BookingRepository


class PermissionChecker:
    """Checks callers against the admin key or a booking's owner."""

    def __init__(
        self,
        bookings: BookingRepository,
        otp: OTPService,
        admin_api_key: str = "",
    ):
        """Initialize permission checker."""
        self.bookings = bookings
        self.otp = otp
        self.admin_api_key = admin_api_key

    def is_admin(self, api_key: Optional[str]) -> bool:
        """Constant-time admin key check; an unset key admits nobody."""
        if not self.admin_api_key or not api_key:
            return False
        return secrets.compare_digest(api_key.encode(), self.admin_api_key.encode())

    async def verify_owner(
        self, booking_id: str, email: str, client_ip: Optional[str] = None
    ) -> Reservation:
        """
        Return the booking when identifier and email jointly match.

        Raises BookingAccessError with the same message whether the booking is
        missing or the email is wrong.
        """
        reservation = await self.bookings.get(booking_id.strip())
        if reservation is None or not reservation.matches_email(email):
            AuditLogger.log_booking_access(email, booking_id, success=False, client_ip=client_ip)
            raise BookingAccessError()
        AuditLogger.log_booking_access(email, booking_id, success=True, client_ip=client_ip)
        return reservation

    async def require_verified(
        self, reservation: Reservation, email: str, client_ip: Optional[str] = None
    ) -> None:
        """Require a passcode grant before a customer mutates a booking."""
        if not await self.otp.has_grant(email, reservation.booking_id):
            AuditLogger.log_permission_denied(
                email, reservation.booking_id, "modify_without_passcode", client_ip=client_ip
            )
            raise OTPRequiredError("Verify your email with the passcode first")
