"""Reservation domain model."""

import secrets
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from booking_sync.models.availability import TimeInterval, format_hhmm, to_minutes


class ReservationStatus(str, Enum):
    """Reservation status enumeration (values match the ledger's select options)."""

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("invalid email address")
    return value


class Customer(BaseModel):
    """Customer identity as stored on the booking."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(max_length=254)
    phone: str = Field(default="", max_length=40)
    address: str = Field(default="", max_length=500)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _normalize_email(v)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "Unknown Customer"


class ServiceDescriptor(BaseModel):
    """What was booked and how long it takes."""

    name: str = Field(min_length=1, max_length=200)
    service_type: str = ""
    category: str = ""
    group: str = ""
    duration_minutes: int = Field(gt=0, le=24 * 60)


class Reservation(BaseModel):
    """A booking as held by the ledger."""

    booking_id: str = Field(description="Business-assigned identifier, e.g. MMRS-2025011410-7K2QX9AB")
    record_id: Optional[str] = Field(default=None, description="Ledger record (page) ID")
    customer: Customer
    service: ServiceDescriptor
    session_date: date
    start_time: time
    status: ReservationStatus = ReservationStatus.PENDING
    event_id: Optional[str] = Field(default=None, description="Linked calendar event ID")
    session_price: Decimal = Field(default=Decimal("0"), ge=0)
    addons_total: Decimal = Field(default=Decimal("0"), ge=0)
    grand_total: Decimal = Field(default=Decimal("0"), ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def duration_minutes(self) -> int:
        return self.service.duration_minutes

    @property
    def is_active(self) -> bool:
        """Cancelled bookings no longer occupy the schedule."""
        return self.status != ReservationStatus.CANCELLED

    @property
    def start_hhmm(self) -> str:
        return format_hhmm(self.start_time)

    @property
    def interval(self) -> TimeInterval:
        """Occupied minutes of the session itself, without buffer."""
        start = to_minutes(self.start_time)
        return TimeInterval(start, start + self.duration_minutes)

    def start_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.session_date, self.start_time, tzinfo=tz)

    def end_at(self, tz: tzinfo) -> datetime:
        return self.start_at(tz) + timedelta(minutes=self.duration_minutes)

    def matches_email(self, email: str) -> bool:
        """Case-insensitive, constant-time email comparison."""
        return secrets.compare_digest(
            self.customer.email.encode(), email.strip().lower().encode()
        )

    def to_search_dict(self) -> dict[str, Any]:
        """Search result view; identifiers and contact details go out by email only."""
        return {
            "status": self.status.value,
            "date": self.session_date.isoformat(),
            "time": self.start_hhmm,
            "duration": self.duration_minutes,
            "service": self.service.name,
            "service_type": self.service.service_type,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Customer-facing view of the booking."""
        return {
            "booking_id": self.booking_id,
            "status": self.status.value,
            "date": self.session_date.isoformat(),
            "time": self.start_hhmm,
            "duration": self.duration_minutes,
            "service": self.service.name,
            "service_type": self.service.service_type,
            "customer": {
                "first_name": self.customer.first_name,
                "last_name": self.customer.last_name,
                "email": self.customer.email,
                "phone": self.customer.phone,
            },
            "totals": {
                "session_price": str(self.session_price),
                "addons_total": str(self.addons_total),
                "grand_total": str(self.grand_total),
            },
        }


class ReservationInput(BaseModel):
    """Input model for reservation creation."""

    customer: Customer
    service: ServiceDescriptor
    session_date: date
    start_time: time
    session_price: Decimal = Field(default=Decimal("0"), ge=0)
    addons_total: Decimal = Field(default=Decimal("0"), ge=0)
    grand_total: Decimal = Field(default=Decimal("0"), ge=0)


class ReservationChanges(BaseModel):
    """Partial update applied by an admin or a verified customer."""

    session_date: Optional[date] = None
    start_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    status: Optional[ReservationStatus] = None
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)
    phone: Optional[str] = Field(default=None, max_length=40)
    address: Optional[str] = Field(default=None, max_length=500)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_email(v) if v is not None else None

    @property
    def reschedules(self) -> bool:
        return any(
            value is not None
            for value in (self.session_date, self.start_time, self.duration_minutes)
        )

    @property
    def contact_fields(self) -> dict[str, str]:
        return self.model_dump(
            include={"first_name", "last_name", "email", "phone", "address"},
            exclude_none=True,
        )

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def apply_to(self, reservation: Reservation) -> Reservation:
        """Return a copy of the reservation with these changes applied."""
        customer = reservation.customer.model_copy(update=self.contact_fields)
        service = reservation.service
        if self.duration_minutes is not None:
            service = service.model_copy(update={"duration_minutes": self.duration_minutes})
        update: dict[str, Any] = {"customer": customer, "service": service}
        if self.session_date is not None:
            update["session_date"] = self.session_date
        if self.start_time is not None:
            update["start_time"] = self.start_time
        if self.status is not None:
            update["status"] = self.status
        return reservation.model_copy(update=update)
