"""Structured audit logging for booking and access events.

Audit entries go through the structured logger; persistence is left to
whatever collects the log stream.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from booking_sync.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Booking lifecycle
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_VIEWED = "booking_viewed"
    BOOKING_SEARCHED = "booking_searched"

    # Passcodes
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"

    # Synchronization
    RECONCILIATION_RUN = "reconciliation_run"
    BLOCK_CREATED = "block_created"
    BLOCK_ARCHIVED = "block_archived"

    # Security
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def _mask_email(email: str | None) -> str | None:
    if not email or "@" not in email:
        return email
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"


class AuditLogger:
    """Centralized audit logging service."""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        actor: str,
        resource_id: str,
        action: str,
        success: bool = True,
        client_ip: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log an auditable event with structured context.

        Args:
            event_type: Type of audit event
            actor: Who acted ("admin", "system" or a customer email)
            resource_id: Booking ID, block ID or other resource key
            action: Human-readable action description
            success: Whether the action succeeded
            client_ip: Caller address when the action came over HTTP
            metadata: Additional context
            error: Error message if action failed
        """
        audit_entry = {
            "event_type": event_type.value,
            "actor": _mask_email(actor) if "@" in actor else actor,
            "resource_id": resource_id,
            "action": action,
            "success": success,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metadata": metadata or {},
        }

        if client_ip:
            audit_entry["client_ip"] = client_ip
        if error:
            audit_entry["error"] = error

        logger.info("audit_event", **audit_entry)

    @staticmethod
    def log_booking_created(
        actor: str, booking_id: str, date: str, time: str, client_ip: Optional[str] = None
    ) -> None:
        """Log booking creation."""
        AuditLogger.log_event(
            event_type=AuditEventType.BOOKING_CREATED,
            actor=actor,
            resource_id=booking_id,
            action="Booking created",
            client_ip=client_ip,
            metadata={"date": date, "time": time},
        )

    @staticmethod
    def log_booking_updated(
        actor: str,
        booking_id: str,
        changes: dict[str, Any],
        client_ip: Optional[str] = None,
    ) -> None:
        """Log booking edits."""
        AuditLogger.log_event(
            event_type=AuditEventType.BOOKING_UPDATED,
            actor=actor,
            resource_id=booking_id,
            action="Booking updated",
            client_ip=client_ip,
            metadata={"changes": changes},
        )

    @staticmethod
    def log_booking_cancelled(
        actor: str, booking_id: str, reason: str, client_ip: Optional[str] = None
    ) -> None:
        """Log booking cancellation."""
        AuditLogger.log_event(
            event_type=AuditEventType.BOOKING_CANCELLED,
            actor=actor,
            resource_id=booking_id,
            action="Booking cancelled",
            client_ip=client_ip,
            metadata={"reason": reason},
        )

    @staticmethod
    def log_booking_access(
        actor: str,
        booking_id: str,
        success: bool,
        client_ip: Optional[str] = None,
    ) -> None:
        """Log a lookup of a booking by identifier and email."""
        AuditLogger.log_event(
            event_type=AuditEventType.BOOKING_VIEWED,
            actor=actor,
            resource_id=booking_id,
            action="Booking viewed" if success else "Booking lookup rejected",
            success=success,
            client_ip=client_ip,
        )

    @staticmethod
    def log_otp(
        actor: str,
        booking_id: str,
        verified: bool | None,
        client_ip: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log passcode issuance (verified=None) or verification."""
        if verified is None:
            event_type = AuditEventType.OTP_REQUESTED
            action = "Passcode requested"
            success = error is None
        else:
            event_type = AuditEventType.OTP_VERIFIED
            action = "Passcode verified" if verified else "Passcode rejected"
            success = verified
        AuditLogger.log_event(
            event_type=event_type,
            actor=actor,
            resource_id=booking_id,
            action=action,
            success=success,
            client_ip=client_ip,
            error=error,
        )

    @staticmethod
    def log_reconciliation(trigger: str, summary: dict[str, Any]) -> None:
        """Log a reconciliation run and its counts."""
        AuditLogger.log_event(
            event_type=AuditEventType.RECONCILIATION_RUN,
            actor="system",
            resource_id="calendar",
            action=f"Reconciliation triggered by {trigger}",
            metadata=summary,
        )

    @staticmethod
    def log_permission_denied(
        actor: str,
        resource_id: str,
        attempted_action: str,
        client_ip: Optional[str] = None,
    ) -> None:
        """Log unauthorized access attempts."""
        AuditLogger.log_event(
            event_type=AuditEventType.PERMISSION_DENIED,
            actor=actor,
            resource_id=resource_id,
            action=f"Permission denied: {attempted_action}",
            success=False,
            client_ip=client_ip,
            metadata={"attempted_action": attempted_action},
        )

    @staticmethod
    def log_rate_limit_exceeded(
        client_ip: str,
        action: str,
        limit: int,
        window_seconds: int,
    ) -> None:
        """Log rate limit violations."""
        AuditLogger.log_event(
            event_type=AuditEventType.RATE_LIMIT_EXCEEDED,
            actor="anonymous",
            resource_id="rate_limiter",
            action=f"Rate limit exceeded: {action}",
            success=False,
            client_ip=client_ip,
            metadata={
                "action": action,
                "limit": limit,
                "window_seconds": window_seconds,
            },
        )
