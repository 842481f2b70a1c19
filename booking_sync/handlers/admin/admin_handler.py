"""Admin endpoints: manual sync, booking management and blocked periods."""

from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from booking_sync.handlers import ERROR_TEMPLATES, get_client_ip, get_service
from booking_sync.logging import get_logger
from booking_sync.logging.audit import AuditLogger
from booking_sync.models.blocked_interval import BlockedIntervalInput
from booking_sync.models.errors import BookingValidationError
from booking_sync.models.reservation import ReservationChanges, ReservationInput
from booking_sync.security.permissions import PermissionChecker
from booking_sync.services.availability import AvailabilityService
from booking_sync.services.blocked_intervals import BlockedIntervalService
from booking_sync.services.booking_flow import BookingService
from booking_sync.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)


async def require_admin(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None),
) -> str:
    """Validate the admin API key from the X-Admin-Key header."""
    permissions: PermissionChecker = get_service(request, "permission_checker")
    if not permissions.is_admin(x_admin_key):
        AuditLogger.log_permission_denied(
            "anonymous", request.url.path, "admin_access", client_ip=get_client_ip(request)
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ERROR_TEMPLATES["unauthorized"](),
        )
    return "admin"


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _window(
    request: Request, start: Optional[date], end: Optional[date]
) -> tuple[Optional[datetime], Optional[datetime]]:
    if start is None and end is None:
        return None, None
    engine: ReconciliationEngine = get_service(request, "reconciliation_engine")
    default_start, default_end = engine.default_window()
    window_start = (
        datetime.combine(start, time(0, 0), tzinfo=engine.tz) if start else default_start
    )
    window_end = (
        datetime.combine(end + timedelta(days=1), time(0, 0), tzinfo=engine.tz)
        if end
        else default_end
    )
    if window_end <= window_start:
        raise BookingValidationError("end must not be before start")
    return window_start, window_end


@router.post("/reconcile")
async def reconcile(
    request: Request,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
) -> dict:
    """Pull calendar changes into the ledger and report the drift found."""
    engine: ReconciliationEngine = get_service(request, "reconciliation_engine")
    window_start, window_end = _window(request, start, end)
    report = await engine.reconcile(window_start, window_end, trigger="manual")
    return {"message": report.describe(), "report": report.model_dump(mode="json")}


@router.post("/sync")
async def sync_ledger(
    request: Request,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
) -> dict:
    """Push ledger state onto the calendar."""
    engine: ReconciliationEngine = get_service(request, "reconciliation_engine")
    window_start, window_end = _window(request, start, end)
    report = await engine.sync_ledger_to_calendar(window_start, window_end)
    return report.model_dump(mode="json")


@router.get("/availability")
async def admin_availability(
    request: Request,
    day: date = Query(alias="date"),
    duration: int = Query(gt=0, le=24 * 60),
) -> dict:
    """Slot list without lead-time or scheduling-window limits."""
    availability: AvailabilityService = get_service(request, "availability_service")
    result = await availability.get_day_availability(day, duration, admin=True)
    return result.model_dump(mode="json")


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
async def admin_create_booking(request: Request, body: ReservationInput) -> dict:
    """Book on behalf of a customer."""
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.create_booking(
        body, client_ip=get_client_ip(request), admin=True
    )
    return {"booking_id": reservation.booking_id, "booking": reservation.to_public_dict()}


@router.patch("/bookings/{booking_id}")
async def admin_update_booking(request: Request, booking_id: str, body: ReservationChanges) -> dict:
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.update_booking(
        booking_id, body, admin=True, client_ip=get_client_ip(request)
    )
    return {"booking": reservation.to_public_dict(), "event_id": reservation.event_id}


@router.delete("/bookings/{booking_id}")
async def admin_cancel_booking(
    request: Request,
    booking_id: str,
    reason: Optional[str] = Query(default=None, max_length=500),
) -> dict:
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.cancel_booking(
        booking_id, admin=True, reason=reason or "", client_ip=get_client_ip(request)
    )
    return {"booking": reservation.to_public_dict()}


@router.post("/blocks", status_code=status.HTTP_201_CREATED)
async def create_block(request: Request, body: BlockedIntervalInput) -> dict:
    """Block a date, a date range or part of a day."""
    block_service: BlockedIntervalService = get_service(request, "block_service")
    block = await block_service.create_block(body)
    return {"block": block.model_dump(mode="json")}


@router.get("/blocks")
async def list_blocks(
    request: Request,
    start: date = Query(),
    end: date = Query(),
) -> dict:
    block_service: BlockedIntervalService = get_service(request, "block_service")
    blocks = await block_service.list_active(start, end)
    return {"blocks": [block.model_dump(mode="json") for block in blocks]}


@router.delete("/blocks/{block_id}")
async def archive_block(request: Request, block_id: str) -> dict:
    block_service: BlockedIntervalService = get_service(request, "block_service")
    block = await block_service.archive_block(block_id)
    return {"block_id": block_id, "archived": True, "block": block.model_dump(mode="json") if block else None}


@router.post("/subscription/renew")
async def renew_subscription(request: Request) -> dict:
    """Register a fresh calendar push channel now."""
    renewer = get_service(request, "subscription_renewer")
    if renewer is None:
        raise BookingValidationError("Push notifications need a public HTTPS base URL")
    info = await renewer.renew()
    return {"subscription": info.model_dump(mode="json")}
