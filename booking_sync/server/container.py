"""Service wiring: builds every client and service from settings."""

from typing import Any, Optional

from booking_sync.config import Settings
from booking_sync.models.availability import WeeklySchedule
from booking_sync.security.permissions import PermissionChecker
from booking_sync.security.rate_limit import RateLimiter
from booking_sync.services.availability import AvailabilityService
from booking_sync.services.blocked_intervals import BlockedIntervalService
from booking_sync.services.booking_flow import BookingService
from booking_sync.services.notifications import NotificationService
from booking_sync.services.otp import OTPService
from booking_sync.services.reconciliation import ReconciliationEngine
from booking_sync.services.scheduler import SchedulerService
from booking_sync.services.slot_calculator import SlotCalculator
from booking_sync.services.subscription_renewer import PushSubscriptionRenewer
from booking_sync.storage.calendar_client import CalendarClient
from booking_sync.storage.kv_store import KeyValueStore, create_store
from booking_sync.storage.ledger_client import (
    LedgerClient,
    NotionBlockRepository,
    NotionBookingRepository,
)
from booking_sync.storage.repository_base import BlockRepository, BookingRepository


def build_services(
    settings: Settings,
    *,
    store: Optional[KeyValueStore] = None,
    calendar_client: Optional[CalendarClient] = None,
    ledger_client: Optional[LedgerClient] = None,
    booking_repo: Optional[BookingRepository] = None,
    block_repo: Optional[BlockRepository] = None,
    notification_service: Optional[NotificationService] = None,
) -> dict[str, Any]:
    """
    Build the service registry stored on ``app.state.services``.

    Keyword overrides replace the default adapters (used by tests and by
    deployments that share a client between processes).
    """
    tz = settings.tz

    store = store or create_store(settings.store_backend, settings.redis_url)
    ledger_client = ledger_client or LedgerClient(
        settings.notion_api_key,
        api_base=settings.notion_api_base,
        notion_version=settings.notion_version,
        timeout_seconds=settings.http_timeout_seconds,
    )
    booking_repo = booking_repo or NotionBookingRepository(
        ledger_client, settings.notion_bookings_database_id
    )
    block_repo = block_repo or NotionBlockRepository(
        ledger_client, settings.notion_availability_database_id
    )
    calendar_client = calendar_client or CalendarClient(
        settings.google_client_id,
        settings.google_client_secret,
        settings.google_refresh_token,
        calendar_id=settings.google_calendar_id,
        api_base=settings.google_calendar_api_base,
        token_url=settings.google_token_url,
        timeout_seconds=settings.http_timeout_seconds,
        send_updates=settings.calendar_send_updates,
    )
    notification_service = notification_service or NotificationService(
        settings.resend_api_key,
        settings.email_from_address,
        business_name=settings.business_name,
    )

    calculator = SlotCalculator(
        WeeklySchedule.default(),
        granularity_minutes=settings.slot_granularity_minutes,
        buffer_minutes=settings.buffer_minutes,
    )
    availability_service = AvailabilityService(
        calendar_client,
        calculator,
        tz,
        min_session_minutes=settings.min_session_minutes,
        lead_time_hours=settings.lead_time_hours,
        scheduling_window_days=settings.scheduling_window_days,
    )
    reconciliation_engine = ReconciliationEngine(
        booking_repo,
        calendar_client,
        tz,
        past_days=settings.reconcile_past_days,
        future_days=settings.reconcile_future_days,
        buffer_minutes=settings.buffer_minutes,
    )
    otp_service = OTPService(
        store,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
        grant_ttl_seconds=settings.otp_grant_ttl_seconds,
    )
    permission_checker = PermissionChecker(
        booking_repo, otp_service, admin_api_key=settings.admin_api_key
    )
    booking_service = BookingService(
        booking_repo,
        availability_service,
        reconciliation_engine,
        permission_checker,
        notification_service,
        tz,
        buffer_minutes=settings.buffer_minutes,
        booking_id_prefix=settings.booking_id_prefix,
    )
    block_service = BlockedIntervalService(block_repo, calendar_client, tz)

    rate_limiters = {
        "otp_send": RateLimiter(
            store,
            max_requests=settings.otp_send_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        "otp_verify": RateLimiter(
            store,
            max_requests=settings.otp_verify_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        "search": RateLimiter(
            store,
            max_requests=settings.search_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    }

    # The calendar only delivers push notifications to public HTTPS addresses
    subscription_renewer = None
    if calendar_client.configured and settings.public_base_url.startswith("https://"):
        subscription_renewer = PushSubscriptionRenewer(
            calendar_client,
            settings.webhook_address,
            ttl_days=settings.subscription_ttl_days,
            renewal_margin_hours=settings.subscription_renewal_margin_hours,
            channel_token=settings.calendar_channel_token,
        )

    scheduler = SchedulerService(
        otp_service,
        reconciliation_engine,
        renewer=subscription_renewer,
        interval_seconds=settings.scheduler_tick_seconds,
        otp_sweep_interval_seconds=settings.otp_sweep_interval_seconds,
        reconcile_interval_seconds=settings.reconcile_sweep_interval_seconds,
    )

    return {
        "settings": settings,
        "store": store,
        "ledger_client": ledger_client,
        "booking_repo": booking_repo,
        "block_repo": block_repo,
        "calendar_client": calendar_client,
        "notification_service": notification_service,
        "slot_calculator": calculator,
        "availability_service": availability_service,
        "reconciliation_engine": reconciliation_engine,
        "otp_service": otp_service,
        "permission_checker": permission_checker,
        "booking_service": booking_service,
        "block_service": block_service,
        "rate_limiters": rate_limiters,
        "subscription_renewer": subscription_renewer,
        "scheduler": scheduler,
    }
