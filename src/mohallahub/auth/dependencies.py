"""
Access guard: resolves the bearer token to a user on every protected request.

Authorization is decided from the user's current row, never from token claims,
so suspension or deletion takes effect immediately.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub.auth.jwt import verify_token
from mohallahub.database import get_session
from mohallahub.db.models import User
from mohallahub.errors import ForbiddenError, UnauthorizedError
from mohallahub.users.service import get_user_by_id

logger = structlog.get_logger()


def extract_token(request: Request) -> str | None:
    """Read the token from ``Authorization: Bearer`` or the ``token`` cookie."""
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get("token") or None


async def authenticate(
    db: AsyncSession,
    token: str | None,
    *,
    allow_unverified_phone: bool = False,
) -> User:
    """
    Run the guard for one request.

    Raises:
        UnauthorizedError: Missing/invalid/expired token, unknown user, or inactive account.
        ForbiddenError: Phone not verified on a route that requires it.
    """
    if not token:
        raise UnauthorizedError

    try:
        payload = verify_token(token)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        logger.info("token_rejected", reason=str(e))
        raise UnauthorizedError from e

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise UnauthorizedError("User no longer exists", "उपयोगकर्ता अब मौजूद नहीं है")
    if user.status != "active":
        raise UnauthorizedError("Account is suspended or deleted", "खाता निलंबित या हटा दिया गया है")
    if not user.is_phone_verified and not allow_unverified_phone:
        raise ForbiddenError(
            "Please verify your phone number first",
            "कृपया पहले अपना फोन नंबर सत्यापित करें",
        )
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """Authenticated, active, phone-verified user."""
    return await authenticate(db, extract_token(request))


async def get_current_user_allow_unverified(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """Like get_current_user but admits users whose phone is not yet verified."""
    return await authenticate(db, extract_token(request), allow_unverified_phone=True)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Attach the user when a valid token for an active account is present; never rejects."""
    token = extract_token(request)
    if not token:
        return None
    try:
        return await authenticate(db, token, allow_unverified_phone=True)
    except UnauthorizedError:
        return None


def require_roles(*roles: str) -> Callable[..., Awaitable[User]]:
    """Dependency factory restricting a route to the given roles."""

    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(
                f"User role {user.role} is not authorized to access this route",
                f"उपयोगकर्ता भूमिका {user.role} इस मार्ग तक पहुंचने के लिए अधिकृत नहीं है",
            )
        return user

    return _check


async def require_verified_address(user: User = Depends(get_current_user)) -> User:
    """Restrict a route to users who have joined a neighborhood."""
    if not user.is_address_verified or user.neighborhood_id is None:
        raise ForbiddenError(
            "Please verify your address to access neighborhood features",
            "मोहल्ला सुविधाओं तक पहुंचने के लिए कृपया अपना पता सत्यापित करें",
        )
    return user
