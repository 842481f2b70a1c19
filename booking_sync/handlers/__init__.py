"""Handlers package - HTTP routers grouped by feature."""

from typing import Any, Optional

from fastapi import Request

from booking_sync.logging.audit import AuditLogger
from booking_sync.models.errors import RateLimitExceededError


def format_error_message(code: str, problem: str, action: Optional[str] = None) -> dict[str, Any]:
    """
    Format error bodies following the pattern: code, problem, suggested action.

    Args:
        code: Machine-readable error code (e.g., "SLOT_CONFLICT")
        problem: Clear description of what went wrong
        action: Suggested next step for the caller

    Returns:
        JSON-serializable error body

    Example:
        >>> format_error_message("SLOT_CONFLICT", "Slot taken.", "Pick another time.")
        {"error": "Slot taken.", "code": "SLOT_CONFLICT", "details": ["Pick another time."]}
    """
    return {"error": problem, "code": code, "details": [action] if action else []}


# Common error templates
ERROR_TEMPLATES = {
    "invalid_request": lambda problem: format_error_message(
        "INVALID_REQUEST",
        problem,
        "Check the request and try again.",
    ),
    "slot_conflict": lambda problem: format_error_message(
        "SLOT_CONFLICT",
        problem,
        "Refresh availability and pick another time.",
    ),
    "booking_not_found": lambda problem: format_error_message(
        "BOOKING_NOT_FOUND",
        problem,
        "Check the booking ID and the email used when booking.",
    ),
    "not_found": lambda problem: format_error_message("NOT_FOUND", problem),
    "otp_required": lambda problem: format_error_message(
        "OTP_REQUIRED",
        problem,
        "Request a passcode and verify it first.",
    ),
    "unauthorized": lambda: format_error_message(
        "UNAUTHORIZED",
        "Invalid or missing API key.",
    ),
    "rate_limit": lambda seconds: format_error_message(
        "RATE_LIMITED",
        "Too many requests.",
        f"Please wait {seconds} seconds before trying again.",
    ),
    "not_configured": lambda problem: format_error_message(
        "SERVICE_NOT_CONFIGURED",
        problem,
        "The studio has not finished setting up this service.",
    ),
    "upstream_error": lambda: format_error_message(
        "UPSTREAM_ERROR",
        "A connected service did not respond as expected.",
        "Please try again shortly.",
    ),
    "internal_error": lambda: format_error_message(
        "INTERNAL_ERROR",
        "Internal server error.",
    ),
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_service(request: Request, name: str) -> Any:
    """Look up a service wired by the application factory."""
    return request.app.state.services[name]


async def enforce_rate_limit(request: Request, action: str) -> str:
    """
    Count a request against the limiter registered for ``action``.

    Returns:
        Client IP used as the limiter key

    Raises:
        RateLimitExceededError: Window exhausted for this client
    """
    client_ip = get_client_ip(request)
    limiter = request.app.state.services["rate_limiters"][action]
    allowed, retry_after = await limiter.check_rate_limit(client_ip, action)
    if not allowed:
        AuditLogger.log_rate_limit_exceeded(
            client_ip, action, limiter.max_requests, limiter.window_seconds
        )
        raise RateLimitExceededError(action, retry_after or limiter.window_seconds)
    return client_ip
