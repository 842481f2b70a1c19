"""Reconciliation and sync reports."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class DriftKind(str, Enum):
    """Classification of a mismatch between ledger and calendar."""

    EVENT_MISSING = "event_missing"
    TIME_CHANGED = "time_changed"
    DUPLICATE_EVENT = "duplicate_event"
    DOUBLE_BOOKED = "double_booked"
    ERROR = "error"


class DriftEntry(BaseModel):
    """One reservation's detected drift and what was done about it."""

    booking_id: str
    event_id: Optional[str] = None
    kind: DriftKind
    previous_date: Optional[str] = None
    previous_time: Optional[str] = None
    new_date: Optional[str] = None
    new_time: Optional[str] = None
    detail: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Outcome of one ledger/calendar comparison over a time window."""

    window_start: datetime
    window_end: datetime
    checked: int = 0
    unchanged: int = 0
    cancelled: list[DriftEntry] = Field(default_factory=list)
    updated: list[DriftEntry] = Field(default_factory=list)
    errors: list[DriftEntry] = Field(default_factory=list)
    warnings: list[DriftEntry] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.cancelled or self.updated)

    def summary(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "unchanged": self.unchanged,
            "cancelled": len(self.cancelled),
            "updated": len(self.updated),
            "errors": len(self.errors),
            "warnings": len(self.warnings),
        }

    def describe(self) -> str:
        """One-line human-readable summary for the admin sync action."""
        if not self.has_changes and not self.errors:
            return f"Checked {self.checked} bookings, everything in sync"
        return (
            f"Checked {self.checked} bookings: {len(self.cancelled)} cancelled, "
            f"{len(self.updated)} rescheduled, {len(self.errors)} errors"
        )


class SyncReport(BaseModel):
    """Outcome of pushing ledger state onto the calendar."""

    created: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class SubscriptionInfo(BaseModel):
    """Registered push-notification channel."""

    channel_id: str
    resource_id: str
    expiration: datetime
    next_renewal: datetime
