"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking_sync import __version__
from booking_sync.config import Settings, load_settings
from booking_sync.handlers import ERROR_TEMPLATES, format_error_message
from booking_sync.handlers.admin.admin_handler import router as admin_router
from booking_sync.handlers.availability.availability_handler import router as availability_router
from booking_sync.handlers.bookings.booking_handler import router as booking_router
from booking_sync.handlers.bookings.otp_handler import router as otp_router
from booking_sync.handlers.system.health import router as health_router
from booking_sync.handlers.webhooks.calendar_webhook_handler import router as calendar_webhook_router
from booking_sync.handlers.webhooks.ledger_webhook_handler import router as ledger_webhook_router
from booking_sync.logging import get_logger
from booking_sync.models.errors import (
    BookingAccessError,
    BookingSyncError,
    BookingValidationError,
    CalendarError,
    CalendarNotConfiguredError,
    LedgerError,
    LedgerNotConfiguredError,
    NotFoundError,
    OTPRequiredError,
    RateLimitExceededError,
    SlotConflictError,
    SubscriptionRenewalError,
)
from booking_sync.server.container import build_services

logger = get_logger(__name__)


def _error_response(exc: BookingSyncError) -> JSONResponse:
    """Map a domain error to its HTTP status and body; internal causes stay in the logs."""
    headers = None
    if isinstance(exc, BookingValidationError):
        status_code, body = 400, ERROR_TEMPLATES["invalid_request"](str(exc))
    elif isinstance(exc, SlotConflictError):
        status_code, body = 409, ERROR_TEMPLATES["slot_conflict"](str(exc))
    elif isinstance(exc, BookingAccessError):
        status_code, body = 404, ERROR_TEMPLATES["booking_not_found"](str(exc))
    elif isinstance(exc, NotFoundError):
        status_code, body = 404, ERROR_TEMPLATES["not_found"](str(exc))
    elif isinstance(exc, OTPRequiredError):
        status_code, body = 403, ERROR_TEMPLATES["otp_required"](str(exc))
    elif isinstance(exc, RateLimitExceededError):
        status_code, body = 429, ERROR_TEMPLATES["rate_limit"](exc.retry_after)
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, (LedgerNotConfiguredError, CalendarNotConfiguredError)):
        status_code, body = 503, ERROR_TEMPLATES["not_configured"](str(exc))
    elif isinstance(exc, (LedgerError, CalendarError, SubscriptionRenewalError)):
        logger.error("upstream_error", error_type=type(exc).__name__, error=str(exc))
        status_code, body = 502, ERROR_TEMPLATES["upstream_error"]()
    else:
        logger.error("unhandled_domain_error", error_type=type(exc).__name__, error=str(exc))
        status_code, body = 500, ERROR_TEMPLATES["internal_error"]()
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def domain_exception_handler(request: Request, exc: BookingSyncError) -> JSONResponse:
    return _error_response(exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with one line per field."""
    details = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    body = format_error_message("INVALID_REQUEST", "Invalid request")
    body["details"] = details
    return JSONResponse(status_code=400, content=body)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else format_error_message("HTTP_ERROR", str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
    return JSONResponse(status_code=500, content=ERROR_TEMPLATES["internal_error"]())


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[dict[str, Any]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment when omitted)
        services: Prebuilt service registry (built from settings when omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or load_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("application_starting", environment=settings.environment)
        for name in ("store", "ledger_client", "calendar_client"):
            await services[name].connect()

        scheduler = services["scheduler"]
        scheduler_task = asyncio.create_task(scheduler.start())
        logger.info(
            "application_started",
            ledger_configured=services["booking_repo"].configured,
            calendar_configured=services["calendar_client"].configured,
            push_notifications=services["subscription_renewer"] is not None,
        )

        yield

        logger.info("application_stopping")
        await scheduler.stop()
        scheduler_task.cancel()
        for name in ("calendar_client", "ledger_client", "store"):
            await services[name].disconnect()

    app = FastAPI(
        title="Booking Sync API",
        description="Availability, bookings and ledger/calendar synchronization",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_exception_handler(BookingSyncError, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(availability_router)
    app.include_router(booking_router)
    app.include_router(otp_router)
    app.include_router(admin_router)
    app.include_router(calendar_webhook_router)
    app.include_router(ledger_webhook_router)

    return app
