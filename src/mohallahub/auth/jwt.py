"""
HMAC-signed session tokens.

The token binds user id, phone, role and neighborhood id. Those claims are
informational: every request re-reads the user before authorizing.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import jwt

from mohallahub.config import get_settings

if TYPE_CHECKING:
    from mohallahub.db.models import User

TOKEN_TYPE = "session"


def create_session_token(
    user_id: int,
    phone: str,
    role: str,
    neighborhood_id: int | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """
    Create a session token.

    Args:
        user_id: The user's database ID.
        phone: The user's phone number.
        role: The user's role at issuance.
        neighborhood_id: The user's neighborhood, if address-verified.
        expires_in: Validity window; defaults to ``jwt_expire_days``.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(days=settings.jwt_expire_days)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "phone": phone,
        "role": role,
        "neighborhood": neighborhood_id,
        "iat": now,
        "exp": now + lifetime,
        "iss": settings.jwt_issuer,
        "type": TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_session(user: User) -> str:
    """Create a session token for ``user`` from its current state."""
    return create_session_token(user.id, user.phone, user.role, user.neighborhood_id)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a session token.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, expired, forged or of the wrong type.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != TOKEN_TYPE:
        msg = f"Expected token type '{TOKEN_TYPE}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    return payload
