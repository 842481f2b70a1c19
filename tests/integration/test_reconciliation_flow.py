"""Integration tests for ledger/calendar reconciliation over in-memory fakes."""

from datetime import date, datetime, time

import pytest

from booking_sync.models.calendar_event import booking_id_line
from booking_sync.models.reconciliation import DriftKind
from booking_sync.models.reservation import ReservationStatus
from conftest import MANILA

WINDOW_START = datetime(2025, 1, 1, tzinfo=MANILA)
WINDOW_END = datetime(2025, 2, 1, tzinfo=MANILA)


async def link(engine, fake_bookings, reservation):
    """Store a reservation and mirror it, returning the linked ledger copy."""
    await fake_bookings.create(reservation)
    stored = fake_bookings.items[reservation.booking_id]
    await engine.ensure_event_for_reservation(stored)
    return fake_bookings.items[reservation.booking_id]


@pytest.mark.asyncio
async def test_deleted_event_cancels_booking(engine, fake_bookings, fake_calendar, make_reservation):
    reservation = await link(engine, fake_bookings, make_reservation())
    del fake_calendar.events[reservation.event_id]

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    assert [entry.booking_id for entry in report.cancelled] == [reservation.booking_id]
    assert report.cancelled[0].kind == DriftKind.EVENT_MISSING
    assert fake_bookings.items[reservation.booking_id].status == ReservationStatus.CANCELLED


@pytest.mark.asyncio
async def test_moved_event_updates_booking_schedule(engine, fake_bookings, fake_calendar, make_reservation):
    reservation = await link(engine, fake_bookings, make_reservation())
    fake_calendar.move_event(reservation.event_id, datetime(2025, 1, 16, 15, 30, tzinfo=MANILA), 45)

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    [entry] = report.updated
    assert entry.kind == DriftKind.TIME_CHANGED
    assert (entry.previous_date, entry.previous_time) == ("2025-01-14", "10:00")
    assert (entry.new_date, entry.new_time) == ("2025-01-16", "15:30")
    stored = fake_bookings.items[reservation.booking_id]
    assert stored.session_date == date(2025, 1, 16)
    assert stored.start_time == time(15, 30)
    assert stored.status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_event_moved_outside_window_is_not_a_cancellation(engine, fake_bookings, fake_calendar, make_reservation):
    reservation = await link(engine, fake_bookings, make_reservation())
    fake_calendar.move_event(reservation.event_id, datetime(2025, 3, 3, 9, 0, tzinfo=MANILA), 45)

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    assert report.cancelled == []
    assert report.updated[0].new_date == "2025-03-03"


@pytest.mark.asyncio
async def test_second_run_writes_nothing(engine, fake_bookings, fake_calendar, make_reservation):
    moved = await link(engine, fake_bookings, make_reservation())
    deleted = await link(
        engine, fake_bookings, make_reservation(booking_id="MMRS-2025011414-EFGH5678", start_time=time(14, 0))
    )
    await link(
        engine, fake_bookings, make_reservation(booking_id="MMRS-2025011416-IJKL9012", start_time=time(16, 0))
    )
    fake_calendar.move_event(moved.event_id, datetime(2025, 1, 14, 11, 0, tzinfo=MANILA), 45)
    del fake_calendar.events[deleted.event_id]

    first = await engine.reconcile(WINDOW_START, WINDOW_END)
    writes_after_first = list(fake_bookings.writes)
    second = await engine.reconcile(WINDOW_START, WINDOW_END)

    assert len(first.cancelled) == 1
    assert len(first.updated) == 1
    assert first.unchanged == 1
    assert second.cancelled == []
    assert second.updated == []
    assert second.unchanged == 2
    assert fake_bookings.writes == writes_after_first


@pytest.mark.asyncio
async def test_calendar_error_is_reported_per_booking(engine, fake_bookings, fake_calendar, make_reservation):
    reservation = await link(engine, fake_bookings, make_reservation())
    del fake_calendar.events[reservation.event_id]
    fake_calendar.fail_get_with = 500

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    assert report.cancelled == []
    assert report.errors[0].booking_id == reservation.booking_id
    assert fake_bookings.items[reservation.booking_id].status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_duplicate_events_are_warned_not_merged(engine, fake_bookings, fake_calendar, make_reservation):
    reservation = await link(engine, fake_bookings, make_reservation())
    fake_calendar.add_timed_event(
        datetime(2025, 1, 14, 10, 0, tzinfo=MANILA), 45, description=booking_id_line(reservation.booking_id)
    )

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    [warning] = report.warnings
    assert warning.kind == DriftKind.DUPLICATE_EVENT
    assert warning.booking_id == reservation.booking_id
    assert len(fake_calendar.events) == 2


@pytest.mark.asyncio
async def test_double_booking_after_move_is_warned(engine, fake_bookings, fake_calendar, make_reservation):
    first = await link(engine, fake_bookings, make_reservation())
    second = await link(
        engine, fake_bookings, make_reservation(booking_id="MMRS-2025011414-EFGH5678", start_time=time(14, 0))
    )
    fake_calendar.move_event(second.event_id, datetime(2025, 1, 14, 10, 30, tzinfo=MANILA), 45)

    report = await engine.reconcile(WINDOW_START, WINDOW_END)

    assert [w.kind for w in report.warnings] == [DriftKind.DOUBLE_BOOKED]
    assert {report.warnings[0].booking_id, report.warnings[0].detail} == {first.booking_id, second.booking_id}


class TestEventMirroring:
    """Ledger-to-calendar mirroring."""

    @pytest.mark.asyncio
    async def test_ensure_event_is_idempotent(self, engine, fake_bookings, fake_calendar, make_reservation):
        reservation = await link(engine, fake_bookings, make_reservation())

        again = await engine.ensure_event_for_reservation(reservation)
        stale = await engine.ensure_event_for_reservation(
            reservation.model_copy(update={"event_id": None})
        )

        assert again == stale == reservation.event_id
        assert fake_calendar.insert_count == 1

    @pytest.mark.asyncio
    async def test_dangling_event_id_is_replaced(self, engine, fake_bookings, fake_calendar, make_reservation):
        await fake_bookings.create(make_reservation(event_id="evt-deleted"))
        reservation = fake_bookings.items[make_reservation().booking_id]

        event_id = await engine.ensure_event_for_reservation(reservation)

        assert event_id != "evt-deleted"
        assert fake_bookings.items[reservation.booking_id].event_id == event_id

    @pytest.mark.asyncio
    async def test_sync_ledger_to_calendar(self, engine, fake_bookings, fake_calendar, make_reservation):
        await fake_bookings.create(make_reservation())
        cancelled = await link(
            engine, fake_bookings, make_reservation(booking_id="MMRS-2025011414-EFGH5678", start_time=time(14, 0))
        )
        await fake_bookings.update_status(cancelled, ReservationStatus.CANCELLED)

        report = await engine.sync_ledger_to_calendar(WINDOW_START, WINDOW_END)

        assert (report.created, report.deleted, report.errors) == (1, 1, [])
        assert cancelled.event_id not in fake_calendar.events
        assert fake_bookings.items[make_reservation().booking_id].event_id is not None

    @pytest.mark.asyncio
    async def test_update_event_patches_schedule(self, engine, fake_bookings, fake_calendar, make_reservation):
        reservation = await link(engine, fake_bookings, make_reservation())
        moved = reservation.model_copy(update={"start_time": time(15, 0)})

        event_id = await engine.update_event_for_reservation(moved)

        assert event_id == reservation.event_id
        assert fake_calendar.patched == [reservation.event_id]
        event = await fake_calendar.get_event(event_id)
        assert event.local_start(MANILA).time() == time(15, 0)

        # Already in step: nothing to patch
        await engine.update_event_for_reservation(moved)
        assert fake_calendar.patched == [reservation.event_id]


class TestTriggers:
    """Push and ledger change notifications."""

    @pytest.mark.asyncio
    async def test_ledger_cancellation_removes_event(self, engine, fake_bookings, fake_calendar, make_reservation):
        reservation = await link(engine, fake_bookings, make_reservation())
        cancelled = reservation.model_copy(update={"status": ReservationStatus.CANCELLED})

        result = await engine.handle_ledger_change("page.updated", cancelled)

        assert result["action"] == "event_deleted"
        assert reservation.event_id in fake_calendar.deleted

    @pytest.mark.asyncio
    async def test_ledger_creation_mirrors_event(self, engine, fake_bookings, fake_calendar, make_reservation):
        await fake_bookings.create(make_reservation())
        stored = fake_bookings.items[make_reservation().booking_id]

        result = await engine.handle_ledger_change("page.created", stored)

        assert result["action"] == "event_ensured"
        assert fake_calendar.insert_count == 1

    @pytest.mark.asyncio
    async def test_ledger_change_for_unknown_record(self, engine):
        result = await engine.handle_ledger_change("page.updated", None)

        assert result == {"status": "ignored", "reason": "record_not_found"}

    @pytest.mark.asyncio
    async def test_push_handshake_and_exists(self, engine, fake_calendar):
        handshake = await engine.handle_push_notification("sync", channel_id="chan-1")
        changed = await engine.handle_push_notification("exists", channel_id="chan-1")

        assert handshake == {"status": "ok", "action": "handshake"}
        assert changed["action"] == "reconciled"
        assert fake_calendar.list_calls == 1
