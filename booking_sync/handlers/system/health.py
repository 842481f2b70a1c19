"""Health check endpoint for production monitoring.

Used by container health checks, deployment scripts and uptime monitors.
The key/value store is critical; the ledger and calendar degrade the
service without taking it down (availability falls back, sync pauses).
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from booking_sync import __version__
from booking_sync.handlers import get_service
from booking_sync.logging import get_logger
from booking_sync.models.errors import CalendarError
from booking_sync.storage.calendar_client import CalendarClient
from booking_sync.storage.kv_store import KeyValueStore
from booking_sync.storage.repository_base import BookingRepository

logger = get_logger(__name__)

# Track application start time for uptime calculation
_start_time: float = time.time()

router = APIRouter(tags=["health"])


@dataclass
class DependencyHealth:
    """Health status for a single dependency."""

    status: str  # "healthy", "unhealthy" or "not_configured"
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass
class HealthCheckResult:
    """Complete health check response."""

    status: str  # "healthy", "degraded", or "unhealthy"
    version: str
    uptime_seconds: int
    timestamp: str
    dependencies: dict[str, DependencyHealth] = field(default_factory=dict)
    subscription: Optional[dict[str, Any]] = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        result: dict[str, Any] = {
            "status": self.status,
            "version": self.version,
            "uptime_seconds": self.uptime_seconds,
            "timestamp": self.timestamp,
            "dependencies": {},
        }

        for name, dep in self.dependencies.items():
            dep_dict: dict[str, Any] = {"status": dep.status}
            if dep.response_time_ms is not None:
                dep_dict["response_time_ms"] = dep.response_time_ms
            if dep.error:
                dep_dict["error"] = dep.error
            result["dependencies"][name] = dep_dict

        if self.subscription is not None:
            result["subscription"] = self.subscription
        if self.warnings:
            result["warnings"] = self.warnings
        if self.errors:
            result["errors"] = self.errors

        return result


async def check_store_health(store: KeyValueStore) -> DependencyHealth:
    """Check the rate-limit/passcode store."""
    start = time.perf_counter()
    try:
        if not await store.ping():
            return DependencyHealth(status="unhealthy", error="Ping failed")
        response_time = int((time.perf_counter() - start) * 1000)
        return DependencyHealth(status="healthy", response_time_ms=response_time)
    except Exception as e:
        logger.error("store_health_check_failed", error=str(e))
        return DependencyHealth(status="unhealthy", error=f"Connection failed: {str(e)[:100]}")


async def check_calendar_health(calendar: CalendarClient) -> DependencyHealth:
    """Check that calendar credentials can still mint an access token."""
    if not calendar.configured:
        return DependencyHealth(status="not_configured")
    start = time.perf_counter()
    try:
        await calendar.get_access_token()
        response_time = int((time.perf_counter() - start) * 1000)
        return DependencyHealth(status="healthy", response_time_ms=response_time)
    except CalendarError as e:
        logger.error("calendar_health_check_failed", error=str(e))
        return DependencyHealth(status="unhealthy", error=f"Token refresh failed: {str(e)[:100]}")


def check_ledger_health(bookings: BookingRepository) -> DependencyHealth:
    """Ledger credentials present; the ledger has no cheap ping."""
    if not bookings.configured:
        return DependencyHealth(status="not_configured")
    return DependencyHealth(status="healthy")


async def perform_health_check(
    store: KeyValueStore,
    calendar: CalendarClient,
    bookings: BookingRepository,
    renewer: Any = None,
) -> HealthCheckResult:
    """Perform health check of all dependencies.

    Returns:
        HealthCheckResult with overall status and dependency details
    """
    result = HealthCheckResult(
        status="healthy",
        version=__version__,
        uptime_seconds=int(time.time() - _start_time),
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )

    result.dependencies["store"] = await check_store_health(store)
    result.dependencies["ledger"] = check_ledger_health(bookings)
    result.dependencies["calendar"] = await check_calendar_health(calendar)

    if renewer is not None and renewer.current is not None:
        result.subscription = {
            "channel_id": renewer.current.channel_id,
            "expiration": renewer.current.expiration.isoformat(),
            "consecutive_failures": renewer.consecutive_failures,
        }
        if renewer.consecutive_failures:
            result.warnings.append("Push channel renewal is failing")

    # Determine overall status
    if result.dependencies["store"].status != "healthy":
        result.status = "unhealthy"
        result.errors.append("Critical: store connection failed")
        return result

    for name in ("ledger", "calendar"):
        dep = result.dependencies[name]
        if dep.status == "unhealthy":
            result.status = "degraded"
            result.warnings.append(f"{name.capitalize()} unavailable")
        elif dep.status == "not_configured":
            result.status = "degraded"
            result.warnings.append(f"{name.capitalize()} not configured")

    return result


def get_http_status_code(health_status: str) -> int:
    """Get HTTP status code for health status (200 or 503)."""
    if health_status == "unhealthy":
        return 503
    return 200


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    result = await perform_health_check(
        get_service(request, "store"),
        get_service(request, "calendar_client"),
        get_service(request, "booking_repo"),
        get_service(request, "subscription_renewer"),
    )
    return JSONResponse(
        status_code=get_http_status_code(result.status),
        content=result.to_dict(),
        headers={"Cache-Control": "no-cache"},
    )


def reset_start_time() -> None:
    """Reset start time for testing purposes."""
    global _start_time
    _start_time = time.time()
