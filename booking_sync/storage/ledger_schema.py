"""Mapping between domain models and ledger (Notion database) properties.

Property names are the ledger's schema; renaming a column in the ledger means
changing it here.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from booking_sync.models.blocked_interval import BlockedInterval, BlockStatus
from booking_sync.models.reservation import (
    Customer,
    Reservation,
    ReservationStatus,
    ServiceDescriptor,
)


class BookingField:
    """Booking database property names."""

    CLIENT_NAME = "Client Name"
    BOOKING_ID = "Booking ID"
    FIRST_NAME = "First Name"
    LAST_NAME = "Last Name"
    EMAIL = "Email"
    PHONE = "Phone"
    ADDRESS = "Address"
    SERVICE = "Service"
    SERVICE_TYPE = "Service Type"
    SERVICE_CATEGORY = "Service Category"
    SERVICE_GROUP = "Service Group"
    DATE = "Date"
    TIME = "Time"
    DURATION = "Duration"
    STATUS = "Status"
    EVENT_ID = "Calendar Event ID"
    SESSION_PRICE = "Session Price"
    ADDONS_TOTAL = "Add-ons Total"
    GRAND_TOTAL = "Grand Total"


class BlockField:
    """Availability database property names."""

    TITLE = "Name"
    BLOCK_ID = "Block ID"
    REASON = "Reason"
    START_DATE = "Start Date"
    END_DATE = "End Date"
    START_TIME = "Start Time"
    END_TIME = "End Time"
    STATUS = "Status"
    EVENT_ID = "Calendar Event ID"


# Property value builders


def title(value: str) -> dict[str, Any]:
    return {"title": [{"text": {"content": value}}]}


def rich_text(value: str) -> dict[str, Any]:
    return {"rich_text": [{"text": {"content": value}}] if value else []}


def select(value: Optional[str]) -> dict[str, Any]:
    return {"select": {"name": value} if value else None}


def date_value(value: Optional[date]) -> dict[str, Any]:
    return {"date": {"start": value.isoformat()} if value else None}


def number(value: Any) -> dict[str, Any]:
    return {"number": float(value) if value is not None else None}


# Property value readers


def read_text(props: dict[str, Any], name: str) -> str:
    prop = props.get(name) or {}
    parts = prop.get("title") or prop.get("rich_text") or []
    return "".join(
        part.get("plain_text") or (part.get("text") or {}).get("content", "")
        for part in parts
    )


def read_select(props: dict[str, Any], name: str) -> Optional[str]:
    value = (props.get(name) or {}).get("select")
    return value.get("name") if value else None


def read_date(props: dict[str, Any], name: str) -> Optional[date]:
    value = (props.get(name) or {}).get("date")
    if not value or not value.get("start"):
        return None
    return date.fromisoformat(value["start"][:10])


def read_number(props: dict[str, Any], name: str) -> Optional[float]:
    return (props.get(name) or {}).get("number")


def read_decimal(props: dict[str, Any], name: str) -> Decimal:
    raw = read_number(props, name)
    if raw is None:
        return Decimal("0")
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal("0")


def read_time(props: dict[str, Any], name: str) -> Optional[time]:
    raw = read_text(props, name).strip()
    if not raw:
        return None
    return time.fromisoformat(raw if len(raw) > 4 else raw.zfill(5))


# Reservations


def reservation_to_properties(reservation: Reservation) -> dict[str, Any]:
    customer = reservation.customer
    service = reservation.service
    return {
        BookingField.CLIENT_NAME: title(customer.full_name),
        BookingField.BOOKING_ID: rich_text(reservation.booking_id),
        BookingField.FIRST_NAME: rich_text(customer.first_name),
        BookingField.LAST_NAME: rich_text(customer.last_name),
        BookingField.EMAIL: {"email": customer.email or None},
        BookingField.PHONE: {"phone_number": customer.phone or None},
        BookingField.ADDRESS: rich_text(customer.address),
        BookingField.SERVICE: rich_text(service.name),
        BookingField.SERVICE_TYPE: select(service.service_type),
        BookingField.SERVICE_CATEGORY: select(service.category),
        BookingField.SERVICE_GROUP: rich_text(service.group),
        BookingField.DATE: date_value(reservation.session_date),
        BookingField.TIME: rich_text(reservation.start_hhmm),
        BookingField.DURATION: number(service.duration_minutes),
        BookingField.STATUS: select(reservation.status.value),
        BookingField.EVENT_ID: rich_text(reservation.event_id or ""),
        BookingField.SESSION_PRICE: number(reservation.session_price),
        BookingField.ADDONS_TOTAL: number(reservation.addons_total),
        BookingField.GRAND_TOTAL: number(reservation.grand_total),
    }


def schedule_properties(session_date: date, start_time: time) -> dict[str, Any]:
    """Only the date/time columns, for reconciliation patches."""
    return {
        BookingField.DATE: date_value(session_date),
        BookingField.TIME: rich_text(f"{start_time.hour:02d}:{start_time.minute:02d}"),
    }


def status_properties(status: ReservationStatus) -> dict[str, Any]:
    return {BookingField.STATUS: select(status.value)}


def event_id_properties(event_id: Optional[str]) -> dict[str, Any]:
    return {BookingField.EVENT_ID: rich_text(event_id or "")}


def reservation_from_page(page: dict[str, Any]) -> Reservation:
    """Build a Reservation from a ledger page; raises ValueError on missing schedule."""
    props = page.get("properties") or {}
    session_date = read_date(props, BookingField.DATE)
    start_time = read_time(props, BookingField.TIME)
    if session_date is None or start_time is None:
        raise ValueError(f"Ledger page {page.get('id')} has no date/time")

    first_name = read_text(props, BookingField.FIRST_NAME)
    if not first_name:
        first_name = read_text(props, BookingField.CLIENT_NAME) or "Unknown"
    status_name = read_select(props, BookingField.STATUS) or ReservationStatus.PENDING.value
    created = page.get("created_time")

    return Reservation(
        booking_id=read_text(props, BookingField.BOOKING_ID),
        record_id=page.get("id"),
        customer=Customer(
            first_name=first_name,
            last_name=read_text(props, BookingField.LAST_NAME),
            email=(props.get(BookingField.EMAIL) or {}).get("email") or "unknown@invalid",
            phone=(props.get(BookingField.PHONE) or {}).get("phone_number") or "",
            address=read_text(props, BookingField.ADDRESS),
        ),
        service=ServiceDescriptor(
            name=read_text(props, BookingField.SERVICE) or "Session",
            service_type=read_select(props, BookingField.SERVICE_TYPE) or "",
            category=read_select(props, BookingField.SERVICE_CATEGORY) or "",
            group=read_text(props, BookingField.SERVICE_GROUP),
            duration_minutes=int(read_number(props, BookingField.DURATION) or 45),
        ),
        session_date=session_date,
        start_time=start_time,
        status=ReservationStatus(status_name),
        event_id=read_text(props, BookingField.EVENT_ID) or None,
        session_price=read_decimal(props, BookingField.SESSION_PRICE),
        addons_total=read_decimal(props, BookingField.ADDONS_TOTAL),
        grand_total=read_decimal(props, BookingField.GRAND_TOTAL),
        created_at=datetime.fromisoformat(created.replace("Z", "+00:00")) if created else datetime.now(timezone.utc),
    )


# Blocked intervals


def block_to_properties(block: BlockedInterval) -> dict[str, Any]:
    return {
        BlockField.TITLE: title(block.summary),
        BlockField.BLOCK_ID: rich_text(block.block_id),
        BlockField.REASON: rich_text(block.reason),
        BlockField.START_DATE: date_value(block.start_date),
        BlockField.END_DATE: date_value(block.end_date),
        BlockField.START_TIME: rich_text(block.start_time.strftime("%H:%M") if block.start_time else ""),
        BlockField.END_TIME: rich_text(block.end_time.strftime("%H:%M") if block.end_time else ""),
        BlockField.STATUS: select(block.status.value),
        BlockField.EVENT_ID: rich_text(block.event_id or ""),
    }


def block_from_page(page: dict[str, Any]) -> BlockedInterval:
    props = page.get("properties") or {}
    start_date = read_date(props, BlockField.START_DATE)
    if start_date is None:
        raise ValueError(f"Ledger page {page.get('id')} has no start date")
    return BlockedInterval(
        block_id=read_text(props, BlockField.BLOCK_ID),
        record_id=page.get("id"),
        reason=read_text(props, BlockField.REASON) or "Studio unavailable",
        start_date=start_date,
        end_date=read_date(props, BlockField.END_DATE) or start_date,
        start_time=read_time(props, BlockField.START_TIME),
        end_time=read_time(props, BlockField.END_TIME),
        status=BlockStatus(read_select(props, BlockField.STATUS) or BlockStatus.ACTIVE.value),
        event_id=read_text(props, BlockField.EVENT_ID) or None,
    )


# Query filters


def text_equals(name: str, value: str) -> dict[str, Any]:
    return {"property": name, "rich_text": {"equals": value}}


def text_not_empty(name: str) -> dict[str, Any]:
    return {"property": name, "rich_text": {"is_not_empty": True}}


def select_not_equals(name: str, value: str) -> dict[str, Any]:
    return {"property": name, "select": {"does_not_equal": value}}


def select_equals(name: str, value: str) -> dict[str, Any]:
    return {"property": name, "select": {"equals": value}}


def date_equals(name: str, value: date) -> dict[str, Any]:
    return {"property": name, "date": {"equals": value.isoformat()}}


def date_on_or_after(name: str, value: date) -> dict[str, Any]:
    return {"property": name, "date": {"on_or_after": value.isoformat()}}


def date_on_or_before(name: str, value: date) -> dict[str, Any]:
    return {"property": name, "date": {"on_or_before": value.isoformat()}}


def email_equals(name: str, value: str) -> dict[str, Any]:
    return {"property": name, "email": {"equals": value}}


def all_of(*conditions: dict[str, Any]) -> dict[str, Any]:
    return {"and": list(conditions)}
