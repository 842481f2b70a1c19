"""Availability endpoints for the booking page."""

from datetime import date

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from booking_sync.handlers import get_service
from booking_sync.logging import get_logger
from booking_sync.services.availability import MAX_BATCH_DATES, AvailabilityService

logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class BatchAvailabilityRequest(BaseModel):
    """Dates to score for the month view."""

    dates: list[date] = Field(min_length=1, max_length=MAX_BATCH_DATES)
    duration: int = Field(gt=0, le=24 * 60)


@router.get("/availability")
async def get_availability(
    request: Request,
    day: date = Query(alias="date"),
    duration: int = Query(gt=0, le=24 * 60),
) -> dict:
    """Valid start times for one date."""
    availability: AvailabilityService = get_service(request, "availability_service")
    result = await availability.get_day_availability(day, duration)
    return result.model_dump(mode="json")


@router.post("/availability/batch")
async def get_batch_availability(request: Request, body: BatchAvailabilityRequest) -> dict:
    """Remaining capacity for many dates from one calendar read."""
    availability: AvailabilityService = get_service(request, "availability_service")
    capacities = await availability.get_batch_capacity(sorted(set(body.dates)), body.duration)
    return {
        "duration": body.duration,
        "dates": [capacity.model_dump(mode="json") for capacity in capacities],
    }
