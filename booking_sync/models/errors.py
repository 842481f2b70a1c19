"""Exception taxonomy shared by services, adapters and handlers."""

from typing import Optional

GENERIC_ACCESS_MESSAGE = "Booking not found or email does not match"


class BookingSyncError(Exception):
    """Base class for all engine errors."""


class BookingValidationError(BookingSyncError):
    """Malformed or out-of-policy input; nothing was written."""


class SlotConflictError(BookingSyncError):
    """Requested slot overlaps another reservation at write time."""

    def __init__(self, message: str = "The selected time is no longer available", conflicting_ids: Optional[list[str]] = None):
        super().__init__(message)
        self.conflicting_ids = conflicting_ids or []


class BookingAccessError(BookingSyncError):
    """Identifier and email do not jointly match a booking.

    The message never says which half was wrong.
    """

    def __init__(self, message: str = GENERIC_ACCESS_MESSAGE):
        super().__init__(message)


class OTPRequiredError(BookingSyncError):
    """Mutation needs a verified passcode for this booking."""


class RateLimitExceededError(BookingSyncError):
    """Caller exceeded a fixed-window limit."""

    def __init__(self, action: str, retry_after: int):
        super().__init__(f"Too many {action} requests")
        self.action = action
        self.retry_after = retry_after


class LedgerError(BookingSyncError):
    """Ledger call failed or returned an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LedgerNotConfiguredError(LedgerError):
    """Ledger credentials are missing."""

    def __init__(self, message: str = "Booking ledger is not configured"):
        super().__init__(message)


class CalendarError(BookingSyncError):
    """Calendar call failed or returned an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_gone(self) -> bool:
        """True for not-found and gone responses."""
        return self.status_code in (404, 410)


class CalendarNotConfiguredError(CalendarError):
    """Calendar OAuth credentials are missing."""

    def __init__(self, message: str = "External calendar is not configured"):
        super().__init__(message)


class SubscriptionRenewalError(BookingSyncError):
    """Push channel could not be registered."""


class NotFoundError(BookingSyncError):
    """Admin lookup for a record that does not exist."""
