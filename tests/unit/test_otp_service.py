"""Unit tests for one-time passcodes."""

import pytest

from booking_sync.services.otp import OTPService
from booking_sync.storage.kv_store import InMemoryStore

BOOKING_ID = "MMRS-2025011410-ABCD1234"
EMAIL = "ana@example.com"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp(clock):
    return OTPService(InMemoryStore(clock=clock), ttl_seconds=600, max_attempts=3, grant_ttl_seconds=1800)


@pytest.mark.asyncio
async def test_issue_returns_six_digits(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)

    assert len(code) == 6
    assert code.isdigit()


@pytest.mark.asyncio
async def test_verify_grants_access(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)

    verified, _ = await otp.verify("ANA@example.com", BOOKING_ID, code)

    assert verified
    assert await otp.has_grant(EMAIL, BOOKING_ID)


@pytest.mark.asyncio
async def test_code_is_single_use(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)
    await otp.verify(EMAIL, BOOKING_ID, code)

    verified, message = await otp.verify(EMAIL, BOOKING_ID, code)

    assert not verified
    assert "expired" in message.lower()


@pytest.mark.asyncio
async def test_wrong_code_counts_attempts(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)
    wrong = "000000" if code != "000000" else "111111"

    verified, message = await otp.verify(EMAIL, BOOKING_ID, wrong)

    assert not verified
    assert "2 attempts remaining" in message
    assert not await otp.has_grant(EMAIL, BOOKING_ID)


@pytest.mark.asyncio
async def test_lockout_after_max_attempts(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(2):
        await otp.verify(EMAIL, BOOKING_ID, wrong)

    verified, message = await otp.verify(EMAIL, BOOKING_ID, wrong)
    assert not verified
    assert "too many attempts" in message.lower()

    # The correct code no longer works once locked out
    verified, _ = await otp.verify(EMAIL, BOOKING_ID, code)
    assert not verified


@pytest.mark.asyncio
async def test_code_expires(otp, clock):
    code = await otp.issue(EMAIL, BOOKING_ID)
    clock.now += 601

    verified, _ = await otp.verify(EMAIL, BOOKING_ID, code)

    assert not verified


@pytest.mark.asyncio
async def test_code_bound_to_booking(otp):
    code = await otp.issue(EMAIL, BOOKING_ID)

    verified, _ = await otp.verify(EMAIL, "MMRS-2025011411-ZZZZ9999", code)

    assert not verified


@pytest.mark.asyncio
async def test_reissue_replaces_code(otp):
    first = await otp.issue(EMAIL, BOOKING_ID)
    second = await otp.issue(EMAIL, BOOKING_ID)

    if first != second:
        assert not (await otp.verify(EMAIL, BOOKING_ID, first))[0]
    assert (await otp.verify(EMAIL, BOOKING_ID, second))[0]


@pytest.mark.asyncio
async def test_grant_expires_and_revokes(otp, clock):
    code = await otp.issue(EMAIL, BOOKING_ID)
    await otp.verify(EMAIL, BOOKING_ID, code)

    await otp.revoke_grant(EMAIL, BOOKING_ID)
    assert not await otp.has_grant(EMAIL, BOOKING_ID)

    code = await otp.issue(EMAIL, BOOKING_ID)
    await otp.verify(EMAIL, BOOKING_ID, code)
    clock.now += 1801
    assert not await otp.has_grant(EMAIL, BOOKING_ID)


@pytest.mark.asyncio
async def test_sweep_purges_expired(otp, clock):
    await otp.issue(EMAIL, BOOKING_ID)
    await otp.issue("bob@example.com", BOOKING_ID)
    clock.now += 601

    assert await otp.sweep() == 2


@pytest.mark.asyncio
async def test_wrong_code_in_final_second_reports_expiry(otp, clock):
    code = await otp.issue(EMAIL, BOOKING_ID)
    wrong = "000000" if code != "000000" else "111111"
    clock.now += 599.5

    verified, message = await otp.verify(EMAIL, BOOKING_ID, wrong)

    assert not verified
    assert "expired" in message.lower()
    assert "too many" not in message.lower()
