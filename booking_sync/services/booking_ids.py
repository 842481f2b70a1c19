"""Booking identifier generation.

Format: ``<PREFIX>-YYYYMMDDHH-<SUFFIX>``. The identifier plus the customer's
email is the proof of ownership for self-service, so the suffix comes from
``secrets`` rather than ``random``.
"""

import re
import secrets
import string
from datetime import date, datetime

BOOKING_ID_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_PREFIX = "MMRS"
SUFFIX_LENGTH = 8

# Older identifiers were issued with a 4-character suffix
_BOOKING_ID_PATTERN = re.compile(r"^([A-Z]{2,10})-(\d{10})-([A-Z0-9]{4,16})$")


def generate_booking_id(
    day: date,
    hour_of_day: int,
    prefix: str = DEFAULT_PREFIX,
    suffix_length: int = SUFFIX_LENGTH,
) -> str:
    """Generate a sortable booking identifier for a session date and hour."""
    if not 0 <= hour_of_day <= 23:
        raise ValueError(f"hour_of_day out of range: {hour_of_day}")
    suffix = "".join(secrets.choice(BOOKING_ID_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{day:%Y%m%d}{hour_of_day:02d}-{suffix}"


def parse_booking_id(booking_id: str) -> tuple[str, datetime, str]:
    """Split an identifier into (prefix, session date-hour, suffix)."""
    match = _BOOKING_ID_PATTERN.match(booking_id.strip())
    if not match:
        raise ValueError(f"Malformed booking ID: {booking_id!r}")
    prefix, stamp, suffix = match.groups()
    return prefix, datetime.strptime(stamp, "%Y%m%d%H"), suffix


def is_valid_booking_id(booking_id: str) -> bool:
    try:
        parse_booking_id(booking_id)
    except ValueError:
        return False
    return True
