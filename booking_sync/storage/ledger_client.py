"""Booking ledger adapter over the Notion database API."""

from datetime import date
from typing import Any, Optional

import httpx

from booking_sync.logging import get_logger
from booking_sync.models.blocked_interval import BlockedInterval, BlockStatus
from booking_sync.models.errors import LedgerError, LedgerNotConfiguredError
from booking_sync.models.reservation import Reservation, ReservationStatus
from booking_sync.storage import ledger_schema as schema
from booking_sync.storage.ledger_schema import BlockField, BookingField
from booking_sync.storage.repository_base import BlockRepository, BookingRepository

logger = get_logger(__name__)

PAGE_SIZE = 100


class LedgerClient:
    """Thin HTTP client for the ledger with bounded timeouts."""

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.notion.com/v1",
        notion_version: str = "2022-06-28",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize ledger client."""
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.notion_version = notion_version
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def connect(self) -> None:
        """Create the pooled HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Notion-Version": self.notion_version,
                "Content-Type": "application/json",
            },
        )

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self, method: str, path: str, json: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        if not self.configured:
            raise LedgerNotConfiguredError()
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("ledger_request_failed", method=method, path=path, error=str(e))
            raise LedgerError(f"Ledger unreachable: {e.__class__.__name__}") from e

        if response.status_code >= 400:
            logger.error(
                "ledger_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise LedgerError(
                f"Ledger returned {response.status_code}", status_code=response.status_code
            )
        return response.json()

    async def query_database(
        self,
        database_id: str,
        filter: Optional[dict[str, Any]] = None,
        sorts: Optional[list[dict[str, Any]]] = None,
    ) -> list[dict[str, Any]]:
        """Run a database query and follow pagination cursors."""
        pages: list[dict[str, Any]] = []
        body: dict[str, Any] = {"page_size": PAGE_SIZE}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts

        while True:
            result = await self.request("POST", f"/databases/{database_id}/query", json=body)
            pages.extend(result.get("results", []))
            if not result.get("has_more") or not result.get("next_cursor"):
                return pages
            body["start_cursor"] = result["next_cursor"]

    async def create_page(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return await self.request(
            "POST",
            "/pages",
            json={"parent": {"database_id": database_id}, "properties": properties},
        )

    async def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return await self.request("PATCH", f"/pages/{page_id}", json={"properties": properties})

    async def get_page(self, page_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/pages/{page_id}")


def _parse_pages(pages: list[dict[str, Any]], parser: Any) -> list[Any]:
    parsed = []
    for page in pages:
        try:
            parsed.append(parser(page))
        except ValueError as e:
            logger.warning("ledger_page_skipped", page_id=page.get("id"), error=str(e))
    return parsed


class NotionBookingRepository(BookingRepository):
    """Reservations stored in the bookings database."""

    def __init__(self, client: LedgerClient, database_id: str):
        self.client = client
        self.database_id = database_id

    @property
    def configured(self) -> bool:
        return self.client.configured and bool(self.database_id)

    def _require_configured(self) -> None:
        if not self.configured:
            raise LedgerNotConfiguredError()

    async def _query(self, filter: dict[str, Any]) -> list[Reservation]:
        self._require_configured()
        pages = await self.client.query_database(
            self.database_id,
            filter=filter,
            sorts=[{"property": BookingField.DATE, "direction": "ascending"}],
        )
        return _parse_pages(pages, schema.reservation_from_page)

    async def get(self, key: str) -> Optional[Reservation]:
        matches = await self._query(schema.text_equals(BookingField.BOOKING_ID, key))
        if len(matches) > 1:
            logger.warning("duplicate_booking_records", booking_id=key, count=len(matches))
        return matches[0] if matches else None

    async def get_by_record_id(self, record_id: str) -> Optional[Reservation]:
        self._require_configured()
        try:
            page = await self.client.get_page(record_id)
        except LedgerError as e:
            if e.status_code == 404:
                return None
            raise
        return schema.reservation_from_page(page)

    async def create(self, entity: Reservation) -> Reservation:
        self._require_configured()
        page = await self.client.create_page(
            self.database_id, schema.reservation_to_properties(entity)
        )
        logger.info(
            "ledger_booking_created",
            booking_id=entity.booking_id,
            record_id=page.get("id"),
        )
        return entity.model_copy(update={"record_id": page.get("id")})

    async def update(self, entity: Reservation) -> Reservation:
        self._require_configured()
        await self._patch(entity, schema.reservation_to_properties(entity))
        return entity

    async def update_schedule(self, entity: Reservation) -> None:
        await self._patch(entity, schema.schedule_properties(entity.session_date, entity.start_time))

    async def update_status(self, entity: Reservation, status: ReservationStatus) -> None:
        await self._patch(entity, schema.status_properties(status))

    async def update_event_id(self, entity: Reservation, event_id: Optional[str]) -> None:
        await self._patch(entity, schema.event_id_properties(event_id))

    async def _patch(self, entity: Reservation, properties: dict[str, Any]) -> None:
        self._require_configured()
        record_id = entity.record_id
        if record_id is None:
            existing = await self.get(entity.booking_id)
            if existing is None or existing.record_id is None:
                raise LedgerError(f"Booking {entity.booking_id} has no ledger record", status_code=404)
            record_id = existing.record_id
        await self.client.update_page(record_id, properties)

    async def list_for_date(self, day: date, include_cancelled: bool = False) -> list[Reservation]:
        condition = schema.date_equals(BookingField.DATE, day)
        if not include_cancelled:
            condition = schema.all_of(
                condition,
                schema.select_not_equals(BookingField.STATUS, ReservationStatus.CANCELLED.value),
            )
        return await self._query(condition)

    async def list_linked(self, start: date, end: date) -> list[Reservation]:
        return await self._query(
            schema.all_of(
                schema.text_not_empty(BookingField.EVENT_ID),
                schema.select_not_equals(BookingField.STATUS, ReservationStatus.CANCELLED.value),
                schema.date_on_or_after(BookingField.DATE, start),
                schema.date_on_or_before(BookingField.DATE, end),
            )
        )

    async def list_in_range(self, start: date, end: date) -> list[Reservation]:
        return await self._query(
            schema.all_of(
                schema.date_on_or_after(BookingField.DATE, start),
                schema.date_on_or_before(BookingField.DATE, end),
            )
        )

    async def find_by_email(self, email: str) -> list[Reservation]:
        return await self._query(schema.email_equals(BookingField.EMAIL, email.strip().lower()))


class NotionBlockRepository(BlockRepository):
    """Blocked intervals stored in the availability database."""

    def __init__(self, client: LedgerClient, database_id: str):
        self.client = client
        self.database_id = database_id

    @property
    def configured(self) -> bool:
        return self.client.configured and bool(self.database_id)

    def _require_configured(self) -> None:
        if not self.configured:
            raise LedgerNotConfiguredError("Availability database is not configured")

    async def get(self, key: str) -> Optional[BlockedInterval]:
        self._require_configured()
        pages = await self.client.query_database(
            self.database_id, filter=schema.text_equals(BlockField.BLOCK_ID, key)
        )
        blocks = _parse_pages(pages, schema.block_from_page)
        return blocks[0] if blocks else None

    async def create(self, entity: BlockedInterval) -> BlockedInterval:
        self._require_configured()
        page = await self.client.create_page(self.database_id, schema.block_to_properties(entity))
        return entity.model_copy(update={"record_id": page.get("id")})

    async def update(self, entity: BlockedInterval) -> BlockedInterval:
        self._require_configured()
        record_id = entity.record_id
        if record_id is None:
            existing = await self.get(entity.block_id)
            if existing is None:
                raise LedgerError(f"Block {entity.block_id} has no ledger record", status_code=404)
            record_id = existing.record_id
        await self.client.update_page(record_id, schema.block_to_properties(entity))
        return entity

    async def list_active(self, start: date, end: date) -> list[BlockedInterval]:
        self._require_configured()
        pages = await self.client.query_database(
            self.database_id,
            filter=schema.all_of(
                schema.select_equals(BlockField.STATUS, BlockStatus.ACTIVE.value),
                schema.date_on_or_before(BlockField.START_DATE, end),
                schema.date_on_or_after(BlockField.END_DATE, start),
            ),
        )
        return _parse_pages(pages, schema.block_from_page)
