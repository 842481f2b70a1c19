"""Push-subscription renewal for calendar change notifications.

Channels expire after a bounded period. A lapsed channel leaves the system on
manual and scheduled reconciliation only, so renewal failures are logged at
error level and re-raised rather than swallowed.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from booking_sync.logging import get_logger
from booking_sync.models.errors import CalendarError, SubscriptionRenewalError
from booking_sync.models.reconciliation import SubscriptionInfo
from booking_sync.storage.calendar_client import CalendarClient

logger = get_logger(__name__)

CHANNEL_ID_PREFIX = "booking-sync"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PushSubscriptionRenewer:
    """Registers a fresh notification channel before the current one lapses."""

    def __init__(
        self,
        calendar: CalendarClient,
        webhook_address: str,
        ttl_days: int = 7,
        renewal_margin_hours: int = 24,
        channel_token: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.calendar = calendar
        self.webhook_address = webhook_address
        self.ttl = timedelta(days=ttl_days)
        self.renewal_margin = timedelta(hours=renewal_margin_hours)
        self.channel_token = channel_token or None
        self._clock = clock
        self.current: Optional[SubscriptionInfo] = None
        self.consecutive_failures = 0

    def needs_renewal(self, now: Optional[datetime] = None) -> bool:
        if self.current is None:
            return True
        now = now or self._clock()
        return now >= self.current.next_renewal

    async def renew(self) -> SubscriptionInfo:
        """
        Register a new channel and stop the previous one.

        Returns:
            The new channel's id, resource id, expiration and renewal time

        Raises:
            SubscriptionRenewalError: registration was rejected or unreachable
        """
        now = self._clock()
        channel_id = f"{CHANNEL_ID_PREFIX}-{int(now.timestamp() * 1000)}"
        requested_expiration = now + self.ttl

        try:
            payload = await self.calendar.watch_events(
                channel_id,
                self.webhook_address,
                requested_expiration,
                token=self.channel_token,
            )
        except CalendarError as e:
            self.consecutive_failures += 1
            logger.error(
                "subscription_renewal_failed",
                channel_id=channel_id,
                consecutive_failures=self.consecutive_failures,
                current_expiration=self.current.expiration.isoformat() if self.current else None,
                error=str(e),
            )
            raise SubscriptionRenewalError(f"Could not register push channel: {e}") from e

        # The provider may shorten the requested expiration
        expiration = requested_expiration
        if payload.get("expiration"):
            expiration = datetime.fromtimestamp(int(payload["expiration"]) / 1000, tz=timezone.utc)

        previous = self.current
        self.current = SubscriptionInfo(
            channel_id=payload.get("id", channel_id),
            resource_id=payload.get("resourceId", ""),
            expiration=expiration,
            next_renewal=expiration - self.renewal_margin,
        )
        self.consecutive_failures = 0
        logger.info(
            "subscription_renewed",
            channel_id=self.current.channel_id,
            resource_id=self.current.resource_id,
            expiration=expiration.isoformat(),
            next_renewal=self.current.next_renewal.isoformat(),
        )

        if previous is not None and previous.resource_id:
            try:
                await self.calendar.stop_channel(previous.channel_id, previous.resource_id)
            except CalendarError as e:
                # The old channel expires on its own
                logger.warning(
                    "subscription_stop_failed",
                    channel_id=previous.channel_id,
                    error=str(e),
                )

        return self.current

    async def renew_if_due(self) -> Optional[SubscriptionInfo]:
        if not self.needs_renewal():
            return None
        return await self.renew()
