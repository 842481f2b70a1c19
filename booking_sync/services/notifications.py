"""Outbound email via Resend.

Sends are fire-and-forget: a failed email is logged and never fails the
booking or passcode operation that triggered it.
"""

import asyncio
from datetime import tzinfo
from html import escape
from typing import Any

import resend

from booking_sync.logging import get_logger
from booking_sync.models.reservation import Reservation

logger = get_logger(__name__)


class NotificationService:
    """Formats and sends customer emails."""

    def __init__(self, api_key: str, from_address: str, business_name: str = "Studio"):
        self.api_key = api_key
        self.from_address = from_address
        self.business_name = business_name
        self._tasks: set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one email; returns False instead of raising on failure."""
        if not self.configured:
            logger.warning("email_not_configured", subject=subject)
            return False

        params: dict[str, Any] = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            resend.api_key = self.api_key
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("email_send_failed", subject=subject, error=str(e))
            return False

        logger.info("email_sent", subject=subject, message_id=(response or {}).get("id"))
        return True

    def send_in_background(self, to: str, subject: str, html: str) -> None:
        """Schedule a send without waiting for it."""
        task = asyncio.create_task(self.send(to, subject, html))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def booking_confirmation(self, reservation: Reservation, tz: tzinfo) -> tuple[str, str]:
        start = reservation.start_at(tz)
        subject = f"Booking received: {reservation.booking_id}"
        html = (
            f"<p>Hi {escape(reservation.customer.first_name)},</p>"
            f"<p>Your {escape(reservation.service.name)} session at {escape(self.business_name)} "
            f"is booked for <strong>{start:%A, %d %B %Y} at {start:%H:%M}</strong> "
            f"({reservation.duration_minutes} minutes).</p>"
            f"<p>Booking ID: <strong>{escape(reservation.booking_id)}</strong><br>"
            f"Keep this ID. Together with your email it lets you view or change the booking.</p>"
        )
        return subject, html

    def booking_ids_message(self, reservations: list[Reservation], tz: tzinfo) -> tuple[str, str]:
        subject = f"Your bookings at {self.business_name}"
        rows = "".join(
            f"<li>{r.start_at(tz):%A, %d %B %Y %H:%M}: {escape(r.service.name)} "
            f"(Booking ID <strong>{escape(r.booking_id)}</strong>, {escape(r.status.value)})</li>"
            for r in reservations
        )
        html = (
            f"<p>These bookings are registered to this email address:</p><ul>{rows}</ul>"
            f"<p>If you did not look them up, ignore this email.</p>"
        )
        return subject, html

    def passcode_message(self, booking_id: str, code: str, ttl_minutes: int) -> tuple[str, str]:
        subject = f"Your verification code: {code}"
        html = (
            f"<p>Use this code to manage booking {escape(booking_id)}:</p>"
            f"<p style=\"font-size:24px;letter-spacing:4px\"><strong>{code}</strong></p>"
            f"<p>The code expires in {ttl_minutes} minutes. If you did not ask for it, ignore this email.</p>"
        )
        return subject, html
