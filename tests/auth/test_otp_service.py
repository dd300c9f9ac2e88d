"""OTP issuer/verifier tests against the database."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub.auth.otp import (
    AttemptsExceededError,
    InvalidOtpError,
    NoChallengeError,
    OtpExpiredError,
    issue_otp,
    issue_otp_for_phone,
    verify_otp,
    verify_otp_for_phone,
)
from mohallahub.database import get_session
from mohallahub.errors import NotFoundError
from mohallahub.users.service import get_user_by_id
from tests.conftest import create_user


def _wrong(code: str) -> str:
    return "100000" if code != "100000" else "100001"


async def _second_session():
    sessions = get_session()
    return sessions, await anext(sessions)


class TestIssue:
    async def test_issue_stores_challenge(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        assert challenge.user_id == user.id
        assert len(challenge.code) == 6
        assert user.otp_code == challenge.code
        assert user.otp_attempts == 0
        assert user.otp_challenge_id == challenge.challenge_id
        assert challenge.expires_at > datetime.now(timezone.utc) + timedelta(minutes=9)

    async def test_reissue_replaces_code_and_resets_attempts(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        first = await issue_otp(db_session, user)
        await db_session.commit()

        with pytest.raises(InvalidOtpError):
            await verify_otp(db_session, user, _wrong(first.code))
        assert user.otp_attempts == 1

        second = await issue_otp(db_session, user)
        await db_session.commit()
        assert second.challenge_id != first.challenge_id
        assert user.otp_attempts == 0

    async def test_unknown_phone(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await issue_otp_for_phone(db_session, "9000000000")


class TestVerify:
    async def test_success_consumes_code(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        verified = await verify_otp(db_session, user, challenge.code)
        assert verified.is_phone_verified is True
        assert verified.verification_level == "phone"
        assert verified.otp_code is None
        assert verified.otp_expires_at is None
        assert verified.otp_attempts == 0

        with pytest.raises(NoChallengeError):
            await verify_otp(db_session, user, challenge.code)

    async def test_no_challenge(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        with pytest.raises(NoChallengeError):
            await verify_otp(db_session, user, "123456")

    async def test_wrong_codes_then_correct_is_rejected(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        for expected_attempts in (1, 2, 3):
            with pytest.raises(InvalidOtpError):
                await verify_otp(db_session, user, _wrong(challenge.code))
            assert user.otp_attempts == expected_attempts

        with pytest.raises(AttemptsExceededError):
            await verify_otp(db_session, user, challenge.code)

        refreshed = await get_user_by_id(db_session, user.id)
        assert refreshed is not None
        assert refreshed.is_phone_verified is False

    async def test_non_ascii_code_counts_as_attempt(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        await issue_otp(db_session, user)
        await db_session.commit()

        with pytest.raises(InvalidOtpError):
            await verify_otp(db_session, user, "१२३४५६")
        assert user.otp_attempts == 1

    async def test_expired(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        user.otp_expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        await db_session.commit()

        with pytest.raises(OtpExpiredError):
            await verify_otp(db_session, user, challenge.code)

    async def test_attempts_checked_before_expiry(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        user.otp_attempts = 3
        user.otp_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db_session.commit()

        with pytest.raises(AttemptsExceededError):
            await verify_otp(db_session, user, challenge.code)

    async def test_address_verified_user_becomes_verified(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        user.is_address_verified = True
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        verified = await verify_otp(db_session, user, challenge.code)
        assert verified.verification_level == "verified"

    async def test_verify_for_unknown_phone(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await verify_otp_for_phone(db_session, "9000000000", "123456")


class TestConcurrentVerification:
    async def test_only_one_consumer_wins(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        sessions, other = await _second_session()
        try:
            stale = await get_user_by_id(other, user.id)
            await other.commit()

            await verify_otp(db_session, user, challenge.code)

            assert stale is not None
            assert stale.otp_code == challenge.code
            with pytest.raises(NoChallengeError):
                await verify_otp(other, stale, challenge.code)
        finally:
            await sessions.aclose()

    async def test_last_attempt_cannot_be_spent_twice(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        user.otp_attempts = 2
        await db_session.commit()

        sessions, other = await _second_session()
        try:
            stale = await get_user_by_id(other, user.id)
            await other.commit()

            with pytest.raises(InvalidOtpError):
                await verify_otp(db_session, user, _wrong(challenge.code))
            assert user.otp_attempts == 3

            assert stale is not None
            assert stale.otp_attempts == 2
            with pytest.raises(AttemptsExceededError):
                await verify_otp(other, stale, _wrong(challenge.code))
        finally:
            await sessions.aclose()

    async def test_wrong_code_after_concurrent_consume(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        challenge = await issue_otp(db_session, user)
        await db_session.commit()

        sessions, other = await _second_session()
        try:
            stale = await get_user_by_id(other, user.id)
            await other.commit()

            await verify_otp(db_session, user, challenge.code)

            assert stale is not None
            with pytest.raises(NoChallengeError):
                await verify_otp(other, stale, _wrong(challenge.code))
            assert stale.otp_attempts == 0
        finally:
            await sessions.aclose()
