"""
One-time code issuance and verification.

A challenge lives on the user row (code, expiry, attempt counter, challenge
id). Failed comparisons and the final consume step are single conditional
UPDATE statements, so concurrent verifications of the same challenge cannot
both pass the attempt limit or both consume the code.
"""

from __future__ import annotations

import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update

from mohallahub.config import get_settings
from mohallahub.db.models import User
from mohallahub.errors import AppError, NotFoundError
from mohallahub.users.service import compute_verification_level, get_user_by_phone

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

OTP_LENGTH = 6


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class OtpError(AppError):
    """Base class for OTP verification failures (400)."""

    status_code = 400


class NoChallengeError(OtpError):
    default_detail = "No OTP found"
    default_detail_hi = "कोई ओटीपी नहीं मिला"


class AttemptsExceededError(OtpError):
    default_detail = "Maximum attempts exceeded"
    default_detail_hi = "अधिकतम प्रयास पार कर गए"


class OtpExpiredError(OtpError):
    default_detail = "OTP expired"
    default_detail_hi = "ओटीपी समाप्त हो गया"


class InvalidOtpError(OtpError):
    default_detail = "Invalid OTP"
    default_detail_hi = "अमान्य ओटीपी"


@dataclass(frozen=True)
class OtpChallenge:
    """An issued challenge. ``code`` must only go to the SMS channel."""

    challenge_id: str
    user_id: int
    code: str
    expires_at: datetime


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def generate_otp_code() -> str:
    """Uniformly random 6-digit code in 100000-999999."""
    return str(100_000 + secrets.randbelow(900_000))


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


async def issue_otp(db: AsyncSession, user: User) -> OtpChallenge:
    """Store a fresh challenge on the user, replacing any previous one."""
    settings = get_settings()
    code = generate_otp_code()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.otp_ttl_minutes)
    challenge_id = str(uuid.uuid4())

    user.otp_code = code
    user.otp_expires_at = expires_at
    user.otp_attempts = 0
    user.otp_challenge_id = challenge_id
    await db.flush()

    logger.info("otp_issued", user_id=user.id, challenge_id=challenge_id)
    return OtpChallenge(challenge_id=challenge_id, user_id=user.id, code=code, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


async def verify_otp(db: AsyncSession, user: User, submitted_code: str) -> User:
    """
    Check ``submitted_code`` against the user's outstanding challenge.

    Checks run in a fixed order: missing challenge, exhausted attempts,
    expiry, then the code itself. On success the challenge is cleared and the
    phone is marked verified.

    Raises:
        NoChallengeError: No code on record (or it was consumed concurrently).
        AttemptsExceededError: The attempt limit was already reached.
        OtpExpiredError: The validity window has passed.
        InvalidOtpError: The code does not match; the attempt is recorded.
    """
    settings = get_settings()
    max_attempts = settings.otp_max_attempts

    if not user.otp_code or user.otp_expires_at is None:
        raise NoChallengeError
    if (user.otp_attempts or 0) >= max_attempts:
        raise AttemptsExceededError
    if datetime.now(timezone.utc) > _as_utc(user.otp_expires_at):
        raise OtpExpiredError

    if not hmac.compare_digest(user.otp_code.encode(), submitted_code.encode()):
        result = await db.execute(
            update(User)
            .where(User.id == user.id)
            .where(User.otp_challenge_id == user.otp_challenge_id)
            .where(User.otp_attempts < max_attempts)
            .values(otp_attempts=User.otp_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(user)
        logger.info("otp_rejected", user_id=user.id, attempts=user.otp_attempts)
        if result.rowcount == 0:
            if user.otp_code is None:
                raise NoChallengeError
            raise AttemptsExceededError
        raise InvalidOtpError

    level = compute_verification_level(True, bool(user.is_address_verified))
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(User)
        .where(User.id == user.id)
        .where(User.otp_challenge_id == user.otp_challenge_id)
        .where(User.otp_code == submitted_code)
        .where(User.otp_attempts < max_attempts)
        .values(
            is_phone_verified=True,
            verification_level=level,
            otp_code=None,
            otp_expires_at=None,
            otp_attempts=0,
            otp_challenge_id=None,
            last_active_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(user)
    if result.rowcount == 0:
        raise NoChallengeError

    logger.info("otp_verified", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Phone-level entry points
# ---------------------------------------------------------------------------


async def _require_user(db: AsyncSession, phone: str) -> User:
    user = await get_user_by_phone(db, phone)
    if user is None:
        raise NotFoundError("User not found with this phone number", "इस फोन नंबर से उपयोगकर्ता नहीं मिला")
    return user


async def issue_otp_for_phone(db: AsyncSession, phone: str) -> OtpChallenge:
    """Issue a challenge for the account registered to ``phone``."""
    user = await _require_user(db, phone)
    return await issue_otp(db, user)


async def verify_otp_for_phone(db: AsyncSession, phone: str, code: str) -> User:
    """Verify ``code`` for the account registered to ``phone``."""
    user = await _require_user(db, phone)
    return await verify_otp(db, user, code)
