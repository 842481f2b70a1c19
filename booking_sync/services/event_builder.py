"""Calendar event bodies for bookings and blocked intervals.

The ``Booking ID:``/``Block ID:`` line must stay the first line of every
description written, since it is the only join key back to the ledger.
"""

from datetime import datetime, time, timedelta, tzinfo
from typing import Any

from booking_sync.models.blocked_interval import BlockedInterval
from booking_sync.models.calendar_event import block_id_line, booking_id_line
from booking_sync.models.reservation import Reservation

BOOKING_SUMMARY_PREFIX = "\U0001f4f8"
REMINDER_MINUTES = (24 * 60, 60)


def _tz_name(tz: tzinfo) -> str:
    return getattr(tz, "key", None) or str(tz)


def _moment(value: datetime, tz: tzinfo) -> dict[str, str]:
    return {"dateTime": value.isoformat(), "timeZone": _tz_name(tz)}


def booking_summary(reservation: Reservation) -> str:
    return (
        f"{BOOKING_SUMMARY_PREFIX} {reservation.service.name} - "
        f"{reservation.customer.full_name}"
    )


def booking_description(reservation: Reservation) -> str:
    customer = reservation.customer
    service = reservation.service
    lines = [
        booking_id_line(reservation.booking_id),
        "",
        f"Customer: {customer.full_name}",
        f"Email: {customer.email}",
        f"Phone: {customer.phone or '-'}",
        f"Service: {service.name}",
        f"Type: {service.service_type or '-'}",
        f"Duration: {service.duration_minutes} minutes",
    ]
    return "\n".join(lines)


def booking_schedule(reservation: Reservation, tz: tzinfo) -> dict[str, Any]:
    """Start/end fields only, for reschedule patches."""
    return {
        "start": _moment(reservation.start_at(tz), tz),
        "end": _moment(reservation.end_at(tz), tz),
    }


def booking_event_body(reservation: Reservation, tz: tzinfo) -> dict[str, Any]:
    body: dict[str, Any] = {
        "summary": booking_summary(reservation),
        "description": booking_description(reservation),
        **booking_schedule(reservation, tz),
        "transparency": "opaque",
        "reminders": {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": m} for m in REMINDER_MINUTES],
        },
    }
    if reservation.customer.email:
        body["attendees"] = [
            {"email": reservation.customer.email, "displayName": reservation.customer.full_name}
        ]
    return body


def booking_patch_body(reservation: Reservation, tz: tzinfo) -> dict[str, Any]:
    """Fields rewritten when a booking changes; the join line is included again."""
    return {
        "summary": booking_summary(reservation),
        "description": booking_description(reservation),
        **booking_schedule(reservation, tz),
    }


def block_event_body(block: BlockedInterval, tz: tzinfo) -> dict[str, Any]:
    body: dict[str, Any] = {
        "summary": block.summary,
        "description": f"{block_id_line(block.block_id)}\n\nReason: {block.reason}",
        "transparency": "opaque",
    }
    if block.is_all_day:
        # The calendar's all-day end date is exclusive
        body["start"] = {"date": block.start_date.isoformat()}
        body["end"] = {"date": (block.end_date + timedelta(days=1)).isoformat()}
    else:
        start_time: time = block.start_time
        end_time: time = block.end_time
        body["start"] = _moment(datetime.combine(block.start_date, start_time, tzinfo=tz), tz)
        body["end"] = _moment(datetime.combine(block.end_date, end_time, tzinfo=tz), tz)
    return body
