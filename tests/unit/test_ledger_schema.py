"""Unit tests for ledger property mapping."""

from datetime import date, time
from decimal import Decimal

import pytest

from booking_sync.models.blocked_interval import BlockedInterval, BlockStatus
from booking_sync.models.reservation import ReservationStatus
from booking_sync.storage import ledger_schema as schema
from booking_sync.storage.ledger_schema import BookingField


def as_page(properties: dict, page_id: str = "page-1") -> dict:
    return {"id": page_id, "created_time": "2025-01-10T03:00:00.000Z", "properties": properties}


def test_reservation_round_trip(make_reservation):
    reservation = make_reservation(event_id="evt-9").model_copy(
        update={"session_price": Decimal("1500"), "grand_total": Decimal("1750.50")}
    )

    parsed = schema.reservation_from_page(as_page(schema.reservation_to_properties(reservation)))

    assert parsed.booking_id == reservation.booking_id
    assert parsed.record_id == "page-1"
    assert parsed.session_date == reservation.session_date
    assert parsed.start_time == reservation.start_time
    assert parsed.duration_minutes == 45
    assert parsed.status == ReservationStatus.CONFIRMED
    assert parsed.event_id == "evt-9"
    assert parsed.customer.email == "ana@example.com"
    assert parsed.session_price == Decimal("1500")
    assert parsed.grand_total == Decimal("1750.50")


def test_unpadded_time_is_accepted(make_reservation):
    properties = schema.reservation_to_properties(make_reservation())
    properties[BookingField.TIME] = schema.rich_text("9:30")

    assert schema.reservation_from_page(as_page(properties)).start_time == time(9, 30)


def test_plain_text_is_preferred_when_present():
    props = {"Name": {"title": [{"plain_text": "Ana", "text": {"content": "ignored"}}]}}
    assert schema.read_text(props, "Name") == "Ana"


def test_missing_schedule_raises(make_reservation):
    properties = schema.reservation_to_properties(make_reservation())
    properties[BookingField.DATE] = schema.date_value(None)

    with pytest.raises(ValueError):
        schema.reservation_from_page(as_page(properties))


def test_empty_event_id_reads_as_none(make_reservation):
    properties = schema.reservation_to_properties(make_reservation())

    assert properties[BookingField.EVENT_ID] == {"rich_text": []}
    assert schema.reservation_from_page(as_page(properties)).event_id is None


def test_partial_property_builders():
    assert schema.schedule_properties(date(2025, 1, 14), time(9, 0)) == {
        BookingField.DATE: {"date": {"start": "2025-01-14"}},
        BookingField.TIME: {"rich_text": [{"text": {"content": "09:00"}}]},
    }
    assert schema.status_properties(ReservationStatus.CANCELLED) == {
        BookingField.STATUS: {"select": {"name": "Cancelled"}}
    }


def test_block_round_trip():
    block = BlockedInterval(
        block_id="BLK-20250114-ABC123",
        reason="Maintenance",
        start_date=date(2025, 1, 14),
        end_date=date(2025, 1, 14),
        start_time=time(9, 0),
        end_time=time(11, 0),
        event_id="evt-3",
    )

    parsed = schema.block_from_page(as_page(schema.block_to_properties(block), "page-7"))

    assert parsed.block_id == block.block_id
    assert parsed.record_id == "page-7"
    assert parsed.start_time == time(9, 0)
    assert parsed.end_time == time(11, 0)
    assert parsed.status == BlockStatus.ACTIVE
    assert parsed.event_id == "evt-3"


def test_filter_builders():
    condition = schema.all_of(
        schema.text_equals(BookingField.BOOKING_ID, "MMRS-2025011410-ABCD1234"),
        schema.select_not_equals(BookingField.STATUS, "Cancelled"),
    )

    assert condition == {
        "and": [
            {"property": "Booking ID", "rich_text": {"equals": "MMRS-2025011410-ABCD1234"}},
            {"property": "Status", "select": {"does_not_equal": "Cancelled"}},
        ]
    }
