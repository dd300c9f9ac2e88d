"""User (credential store) business logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from mohallahub.db.models import DEFAULT_NOTIFICATIONS, User
from mohallahub.errors import ConflictError, ForbiddenError, NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Verification level
# ---------------------------------------------------------------------------


def compute_verification_level(phone_verified: bool, address_verified: bool) -> str:
    """Derive the verification level from the two verification flags."""
    if phone_verified and address_verified:
        return "verified"
    if address_verified:
        return "address"
    if phone_verified:
        return "phone"
    return "basic"


def refresh_verification_level(user: User) -> str:
    """Recompute and store ``user.verification_level``. Call after any flag change."""
    user.verification_level = compute_verification_level(
        bool(user.is_phone_verified), bool(user.is_address_verified)
    )
    return user.verification_level


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_phone(db: AsyncSession, phone: str) -> User | None:
    """Fetch a user by phone number."""
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration and profile
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    phone: str,
    name: str | None = None,
    language: str = "en",
) -> User:
    """
    Create a user holding only a phone number.

    Raises:
        ConflictError: If the phone number is already registered.
    """
    existing = await get_user_by_phone(db, phone)
    if existing is not None:
        raise ConflictError(
            "User already exists with this phone number",
            "इस फोन नंबर से उपयोगकर्ता पहले से मौजूद है",
        )

    now = datetime.now(timezone.utc)
    user = User(
        phone=phone,
        name=name or f"User{phone[-4:]}",
        language=language,
        notifications=dict(DEFAULT_NOTIFICATIONS),
        is_phone_verified=False,
        is_address_verified=False,
        otp_attempts=0,
        role="user",
        status="active",
        trust_score=0,
        joined_at=now,
        last_active_at=now,
        created_at=now,
        updated_at=now,
    )
    refresh_verification_level(user)
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError as e:
        # Concurrent registration with the same phone won the insert
        raise ConflictError(
            "User already exists with this phone number",
            "इस फोन नंबर से उपयोगकर्ता पहले से मौजूद है",
        ) from e

    logger.info("user_registered", user_id=user.id)
    return user


async def update_profile(
    db: AsyncSession,
    user: User,
    name: str | None = None,
    email: str | None = None,
    language: str | None = None,
    notifications: dict[str, Any] | None = None,
) -> User:
    """Update the provided profile fields; notification flags are merged key by key."""
    if name is not None:
        user.name = name
    if email is not None:
        user.email = email.lower().strip()
    if language is not None:
        user.language = language
    if notifications is not None:
        merged = dict(user.notifications or DEFAULT_NOTIFICATIONS)
        merged.update(notifications)
        user.notifications = merged

    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return user


async def update_avatar(db: AsyncSession, user: User, avatar_url: str) -> User:
    """Set the user's avatar URL."""
    user.avatar_url = avatar_url
    user.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return user


async def touch_last_active(db: AsyncSession, user: User) -> None:
    """Record activity for the user."""
    user.last_active_at = datetime.now(timezone.utc)
    await db.flush()


# ---------------------------------------------------------------------------
# Neighborhood directory
# ---------------------------------------------------------------------------


def _resident_filter(neighborhood_id: int) -> list[Any]:
    return [
        User.neighborhood_id == neighborhood_id,
        User.status == "active",
        User.is_phone_verified.is_(True),
    ]


async def list_neighborhood_users(
    db: AsyncSession,
    neighborhood_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    """Active, phone-verified residents of a neighborhood, newest first."""
    filters = _resident_filter(neighborhood_id)
    total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar_one()
    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.joined_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total)


async def search_neighborhood_users(
    db: AsyncSession,
    neighborhood_id: int,
    query: str,
    limit: int = 20,
) -> list[User]:
    """Case-insensitive name search among residents of a neighborhood."""
    result = await db.execute(
        select(User)
        .where(*_resident_filter(neighborhood_id))
        .where(
            or_(
                func.lower(User.name).contains(query.lower(), autoescape=True),
                User.phone.endswith(query, autoescape=True),
            )
        )
        .order_by(User.name)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_neighbor_profile(db: AsyncSession, viewer: User, user_id: int) -> User:
    """
    Fetch another user's profile on behalf of ``viewer``.

    Raises:
        NotFoundError: If the user does not exist or is deleted.
        ForbiddenError: If the user lives in a different neighborhood.
    """
    user = await get_user_by_id(db, user_id)
    if user is None or user.status == "deleted":
        raise NotFoundError("User not found", "उपयोगकर्ता नहीं मिला")
    if viewer.neighborhood_id is None or user.neighborhood_id != viewer.neighborhood_id:
        raise ForbiddenError(
            "You can only view profiles from your neighborhood",
            "आप केवल अपने मोहल्ले की प्रोफ़ाइल देख सकते हैं",
        )
    return user
