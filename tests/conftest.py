"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from datetime import date, datetime, time, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from booking_sync.config import Settings
from booking_sync.models.blocked_interval import BlockedInterval, BlockStatus
from booking_sync.models.calendar_event import CalendarEvent
from booking_sync.models.errors import CalendarError, CalendarNotConfiguredError
from booking_sync.models.reservation import (
    Customer,
    Reservation,
    ReservationStatus,
    ServiceDescriptor,
)
from booking_sync.security.permissions import PermissionChecker
from booking_sync.server.app import create_app
from booking_sync.server.container import build_services
from booking_sync.services.availability import AvailabilityService
from booking_sync.services.blocked_intervals import BlockedIntervalService
from booking_sync.services.booking_flow import BookingService
from booking_sync.services.notifications import NotificationService
from booking_sync.services.otp import OTPService
from booking_sync.services.reconciliation import ReconciliationEngine
from booking_sync.services.slot_calculator import SlotCalculator
from booking_sync.storage.kv_store import InMemoryStore
from booking_sync.storage.repository_base import BlockRepository, BookingRepository

MANILA = ZoneInfo("Asia/Manila")

# Monday 2025-01-13 06:00 in Manila; test sessions are booked on later days
FIXED_NOW = datetime(2025, 1, 13, 6, 0, tzinfo=MANILA)


class FakeBookingRepository(BookingRepository):
    """In-memory ledger keyed by booking ID."""

    def __init__(self, reservations: tuple = (), configured: bool = True):
        self._configured = configured
        self.items: dict[str, Reservation] = {}
        self.writes: list[tuple[str, str]] = []
        self._next_record = 1
        for reservation in reservations:
            self._store(reservation)

    def _store(self, reservation: Reservation) -> Reservation:
        if reservation.record_id is None:
            reservation = reservation.model_copy(update={"record_id": f"page-{self._next_record}"})
            self._next_record += 1
        self.items[reservation.booking_id] = reservation
        return reservation

    @property
    def configured(self) -> bool:
        return self._configured

    async def get(self, key: str) -> Optional[Reservation]:
        return self.items.get(key)

    async def get_by_record_id(self, record_id: str) -> Optional[Reservation]:
        for reservation in self.items.values():
            if reservation.record_id == record_id:
                return reservation
        return None

    async def create(self, entity: Reservation) -> Reservation:
        self.writes.append(("create", entity.booking_id))
        return self._store(entity)

    async def update(self, entity: Reservation) -> Reservation:
        self.writes.append(("update", entity.booking_id))
        self.items[entity.booking_id] = entity
        return entity

    async def update_schedule(self, entity: Reservation) -> None:
        self.writes.append(("schedule", entity.booking_id))
        current = self.items[entity.booking_id]
        self.items[entity.booking_id] = current.model_copy(
            update={"session_date": entity.session_date, "start_time": entity.start_time}
        )

    async def update_status(self, entity: Reservation, status: ReservationStatus) -> None:
        self.writes.append(("status", entity.booking_id))
        current = self.items[entity.booking_id]
        self.items[entity.booking_id] = current.model_copy(update={"status": status})

    async def update_event_id(self, entity: Reservation, event_id: Optional[str]) -> None:
        self.writes.append(("event_id", entity.booking_id))
        current = self.items[entity.booking_id]
        self.items[entity.booking_id] = current.model_copy(update={"event_id": event_id})

    async def list_for_date(self, day: date, include_cancelled: bool = False) -> list[Reservation]:
        return [
            r for r in self.items.values()
            if r.session_date == day and (include_cancelled or r.is_active)
        ]

    async def list_linked(self, start: date, end: date) -> list[Reservation]:
        return [
            r for r in self.items.values()
            if r.event_id and r.is_active and start <= r.session_date <= end
        ]

    async def list_in_range(self, start: date, end: date) -> list[Reservation]:
        return [r for r in self.items.values() if start <= r.session_date <= end]

    async def find_by_email(self, email: str) -> list[Reservation]:
        return [r for r in self.items.values() if r.customer.email == email.strip().lower()]


class FakeBlockRepository(BlockRepository):
    """In-memory availability database keyed by block ID."""

    def __init__(self, configured: bool = True):
        self._configured = configured
        self.items: dict[str, BlockedInterval] = {}
        self._next_record = 1

    @property
    def configured(self) -> bool:
        return self._configured

    async def get(self, key: str) -> Optional[BlockedInterval]:
        return self.items.get(key)

    async def create(self, entity: BlockedInterval) -> BlockedInterval:
        entity = entity.model_copy(update={"record_id": f"block-page-{self._next_record}"})
        self._next_record += 1
        self.items[entity.block_id] = entity
        return entity

    async def update(self, entity: BlockedInterval) -> BlockedInterval:
        self.items[entity.block_id] = entity
        return entity

    async def list_active(self, start: date, end: date) -> list[BlockedInterval]:
        return [
            b for b in self.items.values()
            if b.status == BlockStatus.ACTIVE and b.start_date <= end and b.end_date >= start
        ]


class FakeCalendar:
    """In-memory stand-in for the calendar adapter."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.events: dict[str, dict[str, Any]] = {}
        self.insert_count = 0
        self.patched: list[str] = []
        self.deleted: list[str] = []
        self.list_calls = 0
        self.fail_list = False
        self.fail_get_with: Optional[int] = None
        self.watch_calls: list[dict[str, Any]] = []
        self.stopped_channels: list[str] = []
        self._next_id = 1

    def _new_id(self) -> str:
        event_id = f"evt-{self._next_id}"
        self._next_id += 1
        return event_id

    def add_timed_event(
        self,
        start: datetime,
        minutes: int,
        summary: str = "Staff appointment",
        description: str = "",
        event_id: Optional[str] = None,
        status: str = "confirmed",
    ) -> str:
        event_id = event_id or self._new_id()
        self.events[event_id] = {
            "id": event_id,
            "summary": summary,
            "description": description,
            "status": status,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": (start + timedelta(minutes=minutes)).isoformat()},
        }
        return event_id

    def add_all_day_event(
        self,
        first_day: date,
        days: int = 1,
        summary: str = "\U0001f6ab [Studio Blocked] Closed",
        description: str = "",
    ) -> str:
        event_id = self._new_id()
        self.events[event_id] = {
            "id": event_id,
            "summary": summary,
            "description": description,
            "status": "confirmed",
            "start": {"date": first_day.isoformat()},
            "end": {"date": (first_day + timedelta(days=days)).isoformat()},
        }
        return event_id

    def move_event(self, event_id: str, start: datetime, minutes: int) -> None:
        self.events[event_id]["start"] = {"dateTime": start.isoformat()}
        self.events[event_id]["end"] = {"dateTime": (start + timedelta(minutes=minutes)).isoformat()}

    def _require_configured(self) -> None:
        if not self.configured:
            raise CalendarNotConfiguredError()

    @staticmethod
    def _bounds(payload: dict[str, Any]) -> tuple[datetime, datetime]:
        event = CalendarEvent.from_api(payload)
        if event.is_all_day:
            end = event.all_day_end or event.all_day_start + timedelta(days=1)
            return (
                datetime.combine(event.all_day_start, time(0, 0), tzinfo=MANILA),
                datetime.combine(end, time(0, 0), tzinfo=MANILA),
            )
        return event.start, event.end

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def get_access_token(self, force_refresh: bool = False) -> str:
        self._require_configured()
        return "test-token"

    async def list_events(
        self, time_min: datetime, time_max: datetime, query: Optional[str] = None
    ) -> list[CalendarEvent]:
        self._require_configured()
        self.list_calls += 1
        if self.fail_list:
            raise CalendarError("Calendar API error", status_code=500)

        matches = []
        for payload in self.events.values():
            if payload["status"] == "cancelled":
                continue
            start, end = self._bounds(payload)
            if not (start < time_max and end > time_min):
                continue
            if query and query not in payload["summary"] + payload["description"]:
                continue
            matches.append((start, payload))
        matches.sort(key=lambda item: item[0])
        return [CalendarEvent.from_api(payload) for _, payload in matches]

    async def get_event(self, event_id: str) -> CalendarEvent:
        self._require_configured()
        if self.fail_get_with is not None:
            raise CalendarError("Calendar API error", status_code=self.fail_get_with)
        if event_id not in self.events:
            raise CalendarError("Not Found", status_code=404)
        return CalendarEvent.from_api(self.events[event_id])

    async def insert_event(self, body: dict[str, Any]) -> CalendarEvent:
        self._require_configured()
        self.insert_count += 1
        event_id = self._new_id()
        self.events[event_id] = {"status": "confirmed", "description": "", **body, "id": event_id}
        return CalendarEvent.from_api(self.events[event_id])

    async def patch_event(self, event_id: str, body: dict[str, Any]) -> CalendarEvent:
        self._require_configured()
        if event_id not in self.events:
            raise CalendarError("Not Found", status_code=404)
        self.patched.append(event_id)
        self.events[event_id].update(body)
        return CalendarEvent.from_api(self.events[event_id])

    async def delete_event(self, event_id: str) -> bool:
        self._require_configured()
        if event_id not in self.events:
            return False
        del self.events[event_id]
        self.deleted.append(event_id)
        return True

    async def watch_events(
        self,
        channel_id: str,
        address: str,
        expiration: datetime,
        token: Optional[str] = None,
    ) -> dict[str, Any]:
        self._require_configured()
        self.watch_calls.append(
            {"channel_id": channel_id, "address": address, "expiration": expiration, "token": token}
        )
        return {
            "id": channel_id,
            "resourceId": f"res-{len(self.watch_calls)}",
            "expiration": str(int(expiration.timestamp() * 1000)),
        }

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        self.stopped_channels.append(channel_id)


def build_reservation(
    booking_id: str = "MMRS-2025011410-ABCD1234",
    session_date: date = date(2025, 1, 14),
    start_time: time = time(10, 0),
    duration: int = 45,
    email: str = "ana@example.com",
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    event_id: Optional[str] = None,
) -> Reservation:
    return Reservation(
        booking_id=booking_id,
        customer=Customer(first_name="Ana", last_name="Santos", email=email, phone="+639171234567"),
        service=ServiceDescriptor(name="Solo Portrait", service_type="Studio", duration_minutes=duration),
        session_date=session_date,
        start_time=start_time,
        status=status,
        event_id=event_id,
    )


@pytest.fixture
def tz():
    """Business timezone fixture."""
    return MANILA


@pytest.fixture
def make_reservation():
    """Factory for reservations with sensible defaults."""
    return build_reservation


@pytest.fixture
def fake_bookings():
    """Empty in-memory ledger fixture."""
    return FakeBookingRepository()


@pytest.fixture
def fake_calendar():
    """Empty in-memory calendar fixture."""
    return FakeCalendar()


@pytest.fixture
def memory_store():
    """In-memory key/value store fixture."""
    return InMemoryStore()


@pytest.fixture
def calculator():
    """Default weekly schedule, 15-minute grid, 30-minute buffer."""
    return SlotCalculator()


@pytest.fixture
def availability(fake_calendar, calculator):
    """Availability service pinned to FIXED_NOW."""
    return AvailabilityService(fake_calendar, calculator, MANILA, clock=lambda: FIXED_NOW)


@pytest.fixture
def engine(fake_bookings, fake_calendar):
    """Reconciliation engine over the fakes."""
    return ReconciliationEngine(fake_bookings, fake_calendar, MANILA)


@pytest.fixture
def fake_blocks():
    """Empty in-memory availability database fixture."""
    return FakeBlockRepository()


@pytest.fixture
def otp_service(memory_store):
    return OTPService(memory_store)


@pytest.fixture
def permissions(fake_bookings, otp_service):
    return PermissionChecker(fake_bookings, otp_service, admin_api_key="admin-key")


@pytest.fixture
def booking_service(fake_bookings, availability, engine, permissions):
    """Booking service with email disabled."""
    return BookingService(
        fake_bookings,
        availability,
        engine,
        permissions,
        NotificationService(api_key="", from_address="studio@example.com"),
        MANILA,
    )


@pytest.fixture
def block_service(fake_blocks, fake_calendar):
    return BlockedIntervalService(fake_blocks, fake_calendar, MANILA)


def build_api_services(settings, **overrides) -> dict[str, Any]:
    """Service registry over in-memory fakes, with availability pinned to FIXED_NOW."""
    adapters = {
        "store": InMemoryStore(),
        "calendar_client": FakeCalendar(),
        "booking_repo": FakeBookingRepository(),
        "block_repo": FakeBlockRepository(),
    }
    adapters.update(overrides)
    services = build_services(settings, **adapters)
    services["availability_service"]._clock = lambda: FIXED_NOW
    return services


@pytest.fixture
def api_settings():
    return Settings(_env_file=None, admin_api_key="admin-key")


@pytest.fixture
def api_services(api_settings):
    return build_api_services(api_settings)


@pytest.fixture
def api_client(api_settings, api_services):
    """HTTP client over the app; lifespan (scheduler, connections) is not started."""
    return TestClient(create_app(api_settings, services=api_services))
