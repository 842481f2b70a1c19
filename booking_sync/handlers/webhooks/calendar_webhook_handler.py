"""Calendar push-notification webhook.

Notifications are a doorbell: they carry no event details, so the handler
only validates the channel and triggers a reconcile. The calendar retries
non-2xx responses, so the endpoint always answers 200.
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Header, Request

from booking_sync.handlers import get_service
from booking_sync.logging import get_logger
from booking_sync.services.reconciliation import ReconciliationEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def channel_token_valid(expected: str, received: Optional[str]) -> bool:
    """True when no token is configured or the received one matches."""
    if not expected:
        return True
    if not received:
        return False
    return secrets.compare_digest(received.encode(), expected.encode())


@router.post("/calendar")
async def calendar_webhook(
    request: Request,
    x_goog_resource_state: Optional[str] = Header(default=None),
    x_goog_channel_id: Optional[str] = Header(default=None),
    x_goog_resource_id: Optional[str] = Header(default=None),
    x_goog_message_number: Optional[str] = Header(default=None),
    x_goog_channel_token: Optional[str] = Header(default=None),
) -> dict:
    settings = get_service(request, "settings")
    if not channel_token_valid(settings.calendar_channel_token, x_goog_channel_token):
        logger.warning(
            "calendar_webhook_token_mismatch",
            channel_id=x_goog_channel_id,
            resource_state=x_goog_resource_state,
        )
        return {"status": "ignored", "reason": "invalid_channel_token"}

    engine: ReconciliationEngine = get_service(request, "reconciliation_engine")
    return await engine.handle_push_notification(
        x_goog_resource_state,
        channel_id=x_goog_channel_id,
        resource_id=x_goog_resource_id,
        message_number=x_goog_message_number,
    )
