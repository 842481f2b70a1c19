"""Ledger change webhook: mirrors page changes onto the calendar."""

import secrets
from typing import Any, Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from booking_sync.handlers import ERROR_TEMPLATES, get_service
from booking_sync.logging import get_logger
from booking_sync.models.errors import LedgerError
from booking_sync.models.reservation import Reservation
from booking_sync.services.reconciliation import ReconciliationEngine
from booking_sync.storage.ledger_schema import reservation_from_page
from booking_sync.storage.repository_base import BookingRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _authorized(secret: str, authorization: Optional[str]) -> bool:
    if not secret:
        return True
    if not authorization:
        return False
    return secrets.compare_digest(authorization.encode(), f"Bearer {secret}".encode())


async def _resolve_reservation(
    bookings: BookingRepository, page: dict[str, Any]
) -> Optional[Reservation]:
    """Use the page snapshot from the payload, else re-read the page from the ledger."""
    if page.get("properties"):
        try:
            return reservation_from_page(page)
        except ValueError as e:
            logger.info("ledger_webhook_snapshot_incomplete", record_id=page.get("id"), error=str(e))

    record_id = page.get("id")
    if not record_id:
        return None
    try:
        return await bookings.get_by_record_id(record_id)
    except (LedgerError, ValueError) as e:
        logger.error("ledger_webhook_lookup_failed", record_id=record_id, error=str(e))
        return None


@router.post("/ledger")
async def ledger_webhook(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> dict:
    """
    Process a ledger page notification.

    Payload: ``{"object": "page", "event": "page.updated", "data": {"id", "properties"}}``.
    """
    settings = get_service(request, "settings")
    if not _authorized(settings.notion_webhook_secret, authorization):
        logger.warning("ledger_webhook_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ERROR_TEMPLATES["unauthorized"](),
        )

    payload: dict[str, Any] = await request.json()
    if "verification_token" in payload:
        # One-off subscription handshake
        logger.info("ledger_webhook_verification_received")
        return {"status": "ok", "action": "verification"}

    change_type = payload.get("event") or payload.get("type")
    logger.info("ledger_webhook_received", change_type=change_type, object=payload.get("object"))

    if payload.get("object", "page") != "page":
        return {"status": "ignored", "reason": "non_page_event"}

    page = payload.get("data") or payload.get("entity") or {}
    bookings: BookingRepository = get_service(request, "booking_repo")
    reservation = await _resolve_reservation(bookings, page)

    engine: ReconciliationEngine = get_service(request, "reconciliation_engine")
    return await engine.handle_ledger_change(change_type, reservation)
