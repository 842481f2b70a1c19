"""Scheduler for background tasks (push-channel renewal, passcode sweep, reconcile sweep)."""

import asyncio
import time
from typing import Any, Callable, Optional

from booking_sync.logging import get_logger
from booking_sync.models.errors import BookingSyncError
from booking_sync.services.otp import OTPService
from booking_sync.services.reconciliation import ReconciliationEngine
from booking_sync.services.subscription_renewer import PushSubscriptionRenewer

logger = get_logger(__name__)


class SchedulerService:
    """Background task scheduler running periodic jobs on a fixed tick."""

    def __init__(
        self,
        otp: OTPService,
        engine: ReconciliationEngine,
        renewer: Optional[PushSubscriptionRenewer] = None,
        interval_seconds: int = 60,
        otp_sweep_interval_seconds: int = 300,
        reconcile_interval_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize scheduler service.

        Args:
            otp: Passcode service swept for expired codes
            engine: Reconciliation engine for the optional sweep
            renewer: Push-channel renewer; None when no public URL is configured
            interval_seconds: Tick length
            otp_sweep_interval_seconds: Minimum time between passcode sweeps
            reconcile_interval_seconds: Minimum time between reconcile sweeps, 0 disables
        """
        self.otp = otp
        self.engine = engine
        self.renewer = renewer
        self.interval_seconds = interval_seconds
        self.otp_sweep_interval_seconds = otp_sweep_interval_seconds
        self.reconcile_interval_seconds = reconcile_interval_seconds
        self._clock = clock
        self._running = False
        self._last_run: dict[str, float] = {}

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start scheduler loop."""
        self._running = True
        logger.info("scheduler_started", interval_seconds=self.interval_seconds)

        while self._running:
            try:
                await self.run_due_jobs()
            except Exception as e:
                logger.error("scheduler_error", error=str(e), exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    async def stop(self) -> None:
        """Stop scheduler loop."""
        self._running = False
        logger.info("scheduler_stopped")

    def _due(self, job: str, every_seconds: int) -> bool:
        if every_seconds <= 0:
            return False
        last = self._last_run.get(job)
        return last is None or self._clock() - last >= every_seconds

    def _mark(self, job: str) -> None:
        self._last_run[job] = self._clock()

    async def run_due_jobs(self) -> dict[str, Any]:
        """Run every job whose interval has elapsed; one failing job does not stop the others."""
        results: dict[str, Any] = {}

        if self.renewer is not None:
            results["renewal"] = await self.renew_subscription()

        if self._due("otp_sweep", self.otp_sweep_interval_seconds):
            self._mark("otp_sweep")
            results["otp_sweep"] = await self.sweep_passcodes()

        if self._due("reconcile", self.reconcile_interval_seconds):
            self._mark("reconcile")
            results["reconcile"] = await self.reconcile()

        return results

    async def renew_subscription(self) -> str:
        """
        Renew the push channel when it is close to expiring.

        A fresh channel is followed by a reconcile, since changes made while
        no channel was live produced no notification.
        """
        try:
            info = await self.renewer.renew_if_due()
        except BookingSyncError as e:
            logger.error(
                "scheduled_renewal_failed",
                error=str(e),
                consecutive_failures=self.renewer.consecutive_failures,
            )
            return "failed"
        if info is None:
            return "not_due"

        self._mark("reconcile")
        await self.reconcile(trigger="subscription_renewal")
        return "renewed"

    async def sweep_passcodes(self) -> int:
        """Drop expired passcodes."""
        try:
            return await self.otp.sweep()
        except Exception as e:
            logger.error("passcode_sweep_failed", error=str(e))
            return 0

    async def reconcile(self, trigger: str = "scheduled") -> Optional[dict[str, Any]]:
        """Run a full-window reconcile."""
        try:
            report = await self.engine.reconcile(trigger=trigger)
        except BookingSyncError as e:
            logger.error("scheduled_reconcile_failed", error=str(e))
            return None
        return report.summary()
