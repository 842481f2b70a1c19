"""Passcode endpoints guarding customer self-service changes."""

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from booking_sync.handlers import enforce_rate_limit, get_service
from booking_sync.logging import get_logger
from booking_sync.logging.audit import AuditLogger
from booking_sync.models.errors import BookingValidationError
from booking_sync.security.permissions import PermissionChecker
from booking_sync.services.notifications import NotificationService
from booking_sync.services.otp import OTPService

logger = get_logger(__name__)

router = APIRouter(prefix="/otp", tags=["otp"])


class OTPSendRequest(BaseModel):
    booking_id: str = Field(min_length=1, max_length=64)
    email: str = Field(min_length=3, max_length=254)


class OTPVerifyRequest(OTPSendRequest):
    code: str = Field(min_length=4, max_length=12)


@router.post("/send")
async def send_passcode(request: Request, body: OTPSendRequest) -> dict:
    """Email a passcode to the booking's owner."""
    client_ip = await enforce_rate_limit(request, "otp_send")
    permissions: PermissionChecker = get_service(request, "permission_checker")
    otp: OTPService = get_service(request, "otp_service")
    notifications: NotificationService = get_service(request, "notification_service")

    reservation = await permissions.verify_owner(body.booking_id, body.email, client_ip=client_ip)
    code = await otp.issue(reservation.customer.email, reservation.booking_id)

    subject, html = notifications.passcode_message(
        reservation.booking_id, code, otp.ttl_seconds // 60
    )
    email_sent = await notifications.send(reservation.customer.email, subject, html)
    AuditLogger.log_otp(
        reservation.customer.email,
        reservation.booking_id,
        verified=None,
        client_ip=client_ip,
        error=None if email_sent else "email_not_sent",
    )
    return {"sent": email_sent, "expires_in_seconds": otp.ttl_seconds}


@router.post("/verify")
async def verify_passcode(request: Request, body: OTPVerifyRequest) -> dict:
    """Exchange a passcode for a short-lived change grant."""
    client_ip = await enforce_rate_limit(request, "otp_verify")
    otp: OTPService = get_service(request, "otp_service")

    verified, message = await otp.verify(body.email, body.booking_id, body.code)
    AuditLogger.log_otp(body.email, body.booking_id, verified=verified, client_ip=client_ip)
    if not verified:
        raise BookingValidationError(message)
    return {"verified": True, "message": message, "grant_expires_in_seconds": otp.grant_ttl_seconds}
