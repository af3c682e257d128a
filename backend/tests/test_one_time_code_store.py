"""Tests for the one-time code store."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.models.one_time_code import OneTimeCode
from app.services.exceptions import InvalidOrExpiredCodeError
from app.services.one_time_code import (
    CODE_MAX,
    CODE_MIN,
    ONE_TIME_CODE_TTL,
    OneTimeCodeStore,
    generate_code,
)
from tests.conftest import as_utc

EMAIL = "citizen@rugalika.rw"


@pytest.fixture
def store(db_session, clock):
    return OneTimeCodeStore(db_session, clock=clock)


def _other_code(code: str) -> str:
    return str(CODE_MIN + (int(code) - CODE_MIN + 1) % (CODE_MAX - CODE_MIN + 1))


class TestGenerateCode:
    def test_six_digits_in_range(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert CODE_MIN <= int(code) <= CODE_MAX


class TestIssue:
    """Tests for issuing codes."""

    async def test_issue_persists_code_with_five_minute_expiry(self, store, db_session, clock):
        """A new code is stored unconsumed and expires five minutes from now."""
        code = await store.issue(EMAIL)

        result = await db_session.execute(select(OneTimeCode).where(OneTimeCode.email == EMAIL))
        row = result.scalar_one()
        assert row.code == code
        assert row.consumed is False
        assert as_utc(row.expires_at) == clock() + ONE_TIME_CODE_TTL

    async def test_issue_normalizes_email(self, store):
        await store.issue("  Citizen@Rugalika.RW ")

        assert await store.count_active(EMAIL) == 1

    async def test_reissue_leaves_single_active_code(self, store):
        """Issuing again replaces the previous unconsumed code."""
        first = await store.issue(EMAIL)
        second = await store.issue(EMAIL)

        assert await store.count_active(EMAIL) == 1
        if first != second:
            with pytest.raises(InvalidOrExpiredCodeError):
                await store.verify(EMAIL, first)
        await store.verify(EMAIL, second)

    async def test_codes_for_other_emails_are_untouched(self, store):
        await store.issue(EMAIL)
        await store.issue("someone@rugalika.rw")

        assert await store.count_active(EMAIL) == 1
        assert await store.count_active("someone@rugalika.rw") == 1


class TestVerify:
    """Tests for verifying and consuming codes."""

    async def test_correct_code_is_consumed(self, store):
        code = await store.issue(EMAIL)

        await store.verify(EMAIL, code)

        assert await store.has_active_code(EMAIL) is False

    async def test_code_is_single_use(self, store):
        code = await store.issue(EMAIL)
        await store.verify(EMAIL, code)

        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify(EMAIL, code)

    async def test_wrong_code_rejected_and_real_code_still_valid(self, store):
        code = await store.issue(EMAIL)

        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify(EMAIL, _other_code(code))

        await store.verify(EMAIL, code)

    async def test_never_issued(self, store):
        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify(EMAIL, "123456")

    async def test_code_bound_to_email(self, store):
        code = await store.issue(EMAIL)

        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify("someone@rugalika.rw", code)

    async def test_valid_just_before_expiry(self, store, clock):
        code = await store.issue(EMAIL)
        clock.advance(minutes=4, seconds=59)

        await store.verify(EMAIL, code)

    async def test_rejected_one_second_after_expiry(self, store, clock):
        code = await store.issue(EMAIL)
        clock.advance(minutes=5, seconds=1)

        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify(EMAIL, code)

    async def test_rejected_exactly_at_expiry(self, store, clock):
        code = await store.issue(EMAIL)
        clock.advance(minutes=5)

        with pytest.raises(InvalidOrExpiredCodeError):
            await store.verify(EMAIL, code)

    async def test_concurrent_verification_succeeds_once(self, session_factory, clock):
        """Two workers racing on the same valid code: exactly one wins."""
        async with session_factory() as setup_session:
            code = await OneTimeCodeStore(setup_session, clock=clock).issue(EMAIL)

        async def attempt() -> bool:
            async with session_factory() as session:
                try:
                    await OneTimeCodeStore(session, clock=clock).verify(EMAIL, code)
                    return True
                except InvalidOrExpiredCodeError:
                    return False

        results = await asyncio.gather(attempt(), attempt())

        assert sorted(results) == [False, True]


class TestPurge:
    """Tests for removing expired codes."""

    async def test_purge_removes_only_expired(self, store, clock):
        await store.issue("old@rugalika.rw")
        clock.advance(minutes=10)
        await store.issue(EMAIL)

        removed = await store.purge_expired()

        assert removed == 1
        assert await store.count_active(EMAIL) == 1

    async def test_purge_respects_grace_period(self, store, clock):
        await store.issue(EMAIL)
        clock.advance(minutes=5, seconds=30)

        assert await store.purge_expired(grace=timedelta(seconds=60)) == 0

        clock.advance(seconds=31)
        assert await store.purge_expired(grace=timedelta(seconds=60)) == 1

    async def test_purge_is_idempotent(self, store, clock):
        await store.issue(EMAIL)
        clock.advance(minutes=6)

        assert await store.purge_expired() == 1
        assert await store.purge_expired() == 0
