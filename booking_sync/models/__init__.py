"""Models package - Pydantic domain models."""

from .availability import (
    BusinessHours,
    DateCapacity,
    SlotQueryResult,
    TimeInterval,
    WeeklySchedule,
)
from .blocked_interval import BlockedInterval, BlockedIntervalInput, BlockStatus
from .calendar_event import CalendarEvent
from .reconciliation import (
    DriftEntry,
    DriftKind,
    ReconciliationReport,
    SubscriptionInfo,
    SyncReport,
)
from .reservation import (
    Customer,
    Reservation,
    ReservationChanges,
    ReservationInput,
    ReservationStatus,
    ServiceDescriptor,
)

__all__ = [
    "BusinessHours",
    "DateCapacity",
    "SlotQueryResult",
    "TimeInterval",
    "WeeklySchedule",
    "BlockedInterval",
    "BlockedIntervalInput",
    "BlockStatus",
    "CalendarEvent",
    "DriftEntry",
    "DriftKind",
    "ReconciliationReport",
    "SubscriptionInfo",
    "SyncReport",
    "Customer",
    "Reservation",
    "ReservationChanges",
    "ReservationInput",
    "ReservationStatus",
    "ServiceDescriptor",
]
