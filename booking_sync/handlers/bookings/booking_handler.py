"""Customer booking endpoints: create, look up, edit and cancel."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from booking_sync.handlers import enforce_rate_limit, get_client_ip, get_service
from booking_sync.logging import get_logger
from booking_sync.models.reservation import ReservationChanges, ReservationInput
from booking_sync.services.booking_flow import BookingService

logger = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(request: Request, body: ReservationInput) -> dict:
    """Create a booking; 409 when the slot was taken in the meantime."""
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.create_booking(body, client_ip=get_client_ip(request))
    return {
        "booking_id": reservation.booking_id,
        "calendar_synced": reservation.event_id is not None,
        "booking": reservation.to_public_dict(),
    }


@router.get("")
async def search_bookings(request: Request, email: str = Query(min_length=3)) -> dict:
    """List the bookings made with an email address; IDs are sent to that address."""
    client_ip = await enforce_rate_limit(request, "search")
    booking_service: BookingService = get_service(request, "booking_service")
    reservations = await booking_service.search_bookings(email, client_ip=client_ip)
    return {"bookings": [reservation.to_search_dict() for reservation in reservations]}


@router.get("/{booking_id}")
async def get_booking(request: Request, booking_id: str, email: str = Query(min_length=3)) -> dict:
    """Fetch one booking; identifier and email must match together."""
    client_ip = await enforce_rate_limit(request, "search")
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.get_booking(booking_id, email, client_ip=client_ip)
    return {"booking": reservation.to_public_dict()}


@router.patch("/{booking_id}")
async def update_booking(
    request: Request,
    booking_id: str,
    body: ReservationChanges,
    email: str = Query(min_length=3),
) -> dict:
    """Reschedule or edit contact details; needs a verified passcode."""
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.update_booking(
        booking_id, body, email=email, client_ip=get_client_ip(request)
    )
    return {"booking": reservation.to_public_dict()}


@router.delete("/{booking_id}")
async def cancel_booking(
    request: Request,
    booking_id: str,
    email: str = Query(min_length=3),
    reason: Optional[str] = Query(default=None, max_length=500),
) -> dict:
    """Cancel a booking; needs a verified passcode."""
    booking_service: BookingService = get_service(request, "booking_service")
    reservation = await booking_service.cancel_booking(
        booking_id, email=email, reason=reason or "", client_ip=get_client_ip(request)
    )
    return {"booking": reservation.to_public_dict()}
