"""Unit tests for booking identifier generation."""

from datetime import date, datetime

import pytest

from booking_sync.services.booking_ids import (
    generate_booking_id,
    is_valid_booking_id,
    parse_booking_id,
)


def test_generated_id_layout():
    booking_id = generate_booking_id(date(2025, 1, 14), 10)

    prefix, stamp, suffix = booking_id.split("-")
    assert prefix == "MMRS"
    assert stamp == "2025011410"
    assert len(suffix) == 8
    assert suffix.isalnum() and suffix.upper() == suffix


def test_generated_ids_are_distinct():
    ids = {generate_booking_id(date(2025, 1, 14), 10) for _ in range(200)}
    assert len(ids) == 200


def test_custom_prefix():
    assert generate_booking_id(date(2025, 3, 1), 8, prefix="STU").startswith("STU-2025030108-")


def test_hour_out_of_range():
    with pytest.raises(ValueError):
        generate_booking_id(date(2025, 1, 14), 24)


def test_parse_round_trip():
    booking_id = generate_booking_id(date(2025, 1, 14), 9)

    prefix, stamp, _ = parse_booking_id(booking_id)

    assert prefix == "MMRS"
    assert stamp == datetime(2025, 1, 14, 9)


def test_legacy_short_suffix_accepted():
    assert is_valid_booking_id("MMRS-2024120115-AB12")


@pytest.mark.parametrize(
    "value",
    ["", "MMRS-20250114-ABCD1234", "mmrs-2025011410-ABCD1234", "MMRS-2025011410-AB", "not an id"],
)
def test_malformed_ids_rejected(value):
    assert not is_valid_booking_id(value)
