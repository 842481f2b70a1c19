"""Repository interfaces over the booking ledger."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Generic, Optional, TypeVar

from booking_sync.models.blocked_interval import BlockedInterval
from booking_sync.models.reservation import Reservation, ReservationStatus

T = TypeVar("T")


class RepositoryBase(ABC, Generic[T]):
    """Base repository interface keyed by the business identifier."""

    @property
    def configured(self) -> bool:
        """False when the backing store has no credentials."""
        return True

    @abstractmethod
    async def get(self, key: str) -> Optional[T]:
        """Retrieve entity by business identifier."""
        pass

    @abstractmethod
    async def create(self, entity: T) -> T:
        """Create new entity; returns it with the ledger record ID set."""
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """Write back an existing entity."""
        pass


class BookingRepository(RepositoryBase[Reservation]):
    """Reservation queries the engine relies on."""

    @abstractmethod
    async def list_for_date(self, day: date, include_cancelled: bool = False) -> list[Reservation]:
        """Reservations scheduled on a date, non-cancelled unless asked."""
        pass

    @abstractmethod
    async def list_linked(self, start: date, end: date) -> list[Reservation]:
        """Non-cancelled reservations with a linked event ID dated within [start, end]."""
        pass

    @abstractmethod
    async def list_in_range(self, start: date, end: date) -> list[Reservation]:
        """All reservations dated within [start, end], any status."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> list[Reservation]:
        pass

    @abstractmethod
    async def get_by_record_id(self, record_id: str) -> Optional[Reservation]:
        """Retrieve a reservation by its ledger record ID."""
        pass

    @abstractmethod
    async def update_schedule(self, entity: Reservation) -> None:
        """Write only the date and time columns."""
        pass

    @abstractmethod
    async def update_status(self, entity: Reservation, status: ReservationStatus) -> None:
        pass

    @abstractmethod
    async def update_event_id(self, entity: Reservation, event_id: Optional[str]) -> None:
        pass


class BlockRepository(RepositoryBase[BlockedInterval]):
    """Blocked interval records."""

    @abstractmethod
    async def list_active(self, start: date, end: date) -> list[BlockedInterval]:
        """Active blocks overlapping [start, end]."""
        pass
