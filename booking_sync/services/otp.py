"""One-time passcodes for customer self-service.

Codes are keyed by ``<email>:<booking id>``. A verified code is exchanged for
a short-lived grant that the update and cancel paths check.
"""

import json
import secrets
import string

from booking_sync.logging import get_logger
from booking_sync.storage.kv_store import KeyValueStore

logger = get_logger(__name__)

CODE_LENGTH = 6


def passcode_key(email: str, booking_id: str) -> str:
    return f"{email.strip().lower()}:{booking_id.strip()}"


class OTPService:
    """Issues, verifies and sweeps passcodes held in a key/value store."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 600,
        max_attempts: int = 5,
        grant_ttl_seconds: int = 1800,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.grant_ttl_seconds = grant_ttl_seconds

    async def issue(self, email: str, booking_id: str) -> str:
        """Create a new code, replacing any outstanding one."""
        key = passcode_key(email, booking_id)
        code = "".join(secrets.choice(string.digits) for _ in range(CODE_LENGTH))
        await self.store.set(
            f"otp:{key}",
            json.dumps({"code": code, "attempts": 0}),
            self.ttl_seconds,
        )
        logger.info("otp_issued", booking_id=booking_id, ttl_seconds=self.ttl_seconds)
        return code

    async def verify(self, email: str, booking_id: str, code: str) -> tuple[bool, str]:
        """
        Check a submitted code.

        Returns: (verified, message)
        """
        key = f"otp:{passcode_key(email, booking_id)}"
        raw = await self.store.get(key)
        if raw is None:
            return False, "Code expired or not requested. Please request a new code."

        record = json.loads(raw)
        if record["attempts"] >= self.max_attempts:
            await self.store.delete(key)
            return False, "Too many attempts. Please request a new code."

        if secrets.compare_digest(record["code"], code.strip()):
            await self.store.delete(key)
            await self.store.set(
                f"otp-grant:{passcode_key(email, booking_id)}", "1", self.grant_ttl_seconds
            )
            logger.info("otp_verified", booking_id=booking_id)
            return True, "Email verified"

        record["attempts"] += 1
        remaining_ttl = await self.store.ttl(key)
        if remaining_ttl <= 0:
            await self.store.delete(key)
            return False, "Code expired or not requested. Please request a new code."
        if record["attempts"] >= self.max_attempts:
            await self.store.delete(key)
            logger.warning("otp_locked_out", booking_id=booking_id)
            return False, "Too many attempts. Please request a new code."

        await self.store.set(key, json.dumps(record), remaining_ttl)
        remaining = self.max_attempts - record["attempts"]
        logger.info("otp_rejected", booking_id=booking_id, attempts_left=remaining)
        return False, f"Invalid code. {remaining} attempts remaining."

    async def has_grant(self, email: str, booking_id: str) -> bool:
        return await self.store.get(f"otp-grant:{passcode_key(email, booking_id)}") is not None

    async def revoke_grant(self, email: str, booking_id: str) -> None:
        await self.store.delete(f"otp-grant:{passcode_key(email, booking_id)}")

    async def sweep(self) -> int:
        """Drop expired codes and grants from stores that do not expire keys themselves."""
        purged = await self.store.purge_expired()
        if purged:
            logger.info("otp_sweep_completed", purged=purged)
        return purged
