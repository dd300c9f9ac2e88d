"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, Response
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub.auth.dependencies import get_current_user, get_current_user_allow_unverified
from mohallahub.auth.jwt import issue_session
from mohallahub.auth.otp import issue_otp, verify_otp_for_phone
from mohallahub.auth.schemas import (
    MessageResponse,
    OtpSentResponse,
    PhoneRequest,
    RegisterRequest,
    SessionResponse,
    UpdateProfileRequest,
    UserResponse,
    ValidateTokenResponse,
    VerifyOtpRequest,
)
from mohallahub.config import get_settings
from mohallahub.database import get_session
from mohallahub.db.models import User
from mohallahub.errors import ForbiddenError, NotFoundError, RateLimitedError
from mohallahub.middleware.rate_limit import enforce_auth_rate_limit, hit_counter
from mohallahub.neighborhoods.router import submit_address
from mohallahub.neighborhoods.schemas import AddressVerifiedResponse
from mohallahub.redis_client import get_redis
from mohallahub.sms.service import get_sms_service
from mohallahub.users.schemas import user_response
from mohallahub.users.service import get_user_by_phone, register_user, touch_last_active, update_profile

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def _limit_auth_attempts(request: Request, redis: Redis) -> None:
    settings = get_settings()
    await enforce_auth_rate_limit(
        redis,
        _client_ip(request),
        max_attempts=settings.auth_rate_limit_attempts,
        window_seconds=settings.auth_rate_limit_window_seconds,
    )


async def _send_otp(
    db: AsyncSession,
    redis: Redis,
    user: User,
    message: str,
    message_hi: str,
    *,
    is_new_user: bool = False,
) -> OtpSentResponse:
    """Throttle per phone, issue a fresh challenge, commit it, then text it."""
    settings = get_settings()
    sends = await hit_counter(redis, f"otp_send:{user.phone}", settings.otp_send_window_seconds)
    if sends > settings.otp_send_limit:
        raise RateLimitedError(
            "Too many OTP requests. Please try again later.",
            "बहुत अधिक ओटीपी अनुरोध। कृपया बाद में पुनः प्रयास करें।",
            retry_after=settings.otp_send_window_seconds,
        )

    challenge = await issue_otp(db, user)
    await db.commit()

    delivered = await get_sms_service().send_otp(user.phone, challenge.code, user.language)
    if not delivered:
        logger.warning("otp_delivery_failed", user_id=user.id, challenge_id=challenge.challenge_id)

    return OtpSentResponse(
        message=message,
        message_hi=message_hi,
        user_id=user.id,
        is_new_user=is_new_user,
        otp=challenge.code if settings.expose_otp_in_response else None,
    )


# ---------------------------------------------------------------------------
# Phone + OTP
# ---------------------------------------------------------------------------


@router.post("/register", response_model=OtpSentResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    db: AsyncSession = Depends(get_session),
) -> OtpSentResponse:
    """Create an account for a phone number and text it a verification code."""
    await _limit_auth_attempts(request, redis)
    user = await register_user(db, body.phone, name=body.name, language=body.language)
    return await _send_otp(
        db,
        redis,
        user,
        "Registration successful. Please verify your phone number.",
        "पंजीकरण सफल। कृपया अपना फोन नंबर सत्यापित करें।",
        is_new_user=True,
    )


@router.post("/login", response_model=OtpSentResponse)
async def login(
    body: PhoneRequest,
    request: Request,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    db: AsyncSession = Depends(get_session),
) -> OtpSentResponse:
    """Send a login code to a registered phone number."""
    await _limit_auth_attempts(request, redis)
    user = await get_user_by_phone(db, body.phone)
    if user is None:
        raise NotFoundError("User not found with this phone number", "इस फोन नंबर से उपयोगकर्ता नहीं मिला")
    if user.status != "active":
        raise ForbiddenError("Account is suspended or deleted", "खाता निलंबित या हटा दिया गया है")
    return await _send_otp(db, redis, user, "OTP sent successfully", "ओटीपी सफलतापूर्वक भेजा गया")


@router.post("/verify-otp", response_model=SessionResponse)
async def verify_otp_endpoint(
    body: VerifyOtpRequest,
    request: Request,
    response: Response,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    """Verify the SMS code and issue a session token."""
    await _limit_auth_attempts(request, redis)
    user = await verify_otp_for_phone(db, body.phone, body.otp)
    if user.status != "active":
        raise ForbiddenError("Account is suspended or deleted", "खाता निलंबित या हटा दिया गया है")

    token = issue_session(user)
    settings = get_settings()
    response.set_cookie(
        "token",
        token,
        max_age=settings.jwt_expire_days * 86400,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
    )
    logger.info("session_issued", user_id=user.id)
    return SessionResponse(token=token, user=user_response(user))


@router.post("/resend-otp", response_model=OtpSentResponse)
async def resend_otp(
    body: PhoneRequest,
    request: Request,
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    db: AsyncSession = Depends(get_session),
) -> OtpSentResponse:
    """Replace the outstanding code with a new one."""
    await _limit_auth_attempts(request, redis)
    user = await get_user_by_phone(db, body.phone)
    if user is None:
        raise NotFoundError("User not found", "उपयोगकर्ता नहीं मिला")
    return await _send_otp(db, redis, user, "OTP resent successfully", "ओटीपी पुनः भेजा गया")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    """Get the current user's profile."""
    return user_response(user)


@router.put("/update-profile", response_model=UserResponse)
async def update_profile_endpoint(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user_allow_unverified),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update name, email, language or notification preferences."""
    user = await update_profile(
        db,
        user,
        name=body.name,
        email=body.email,
        language=body.language,
        notifications=body.notifications,
    )
    await db.commit()
    return user_response(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MessageResponse:
    """Record activity and clear the session cookie."""
    await touch_last_active(db, user)
    await db.commit()
    response.delete_cookie("token")
    logger.info("user_logged_out", user_id=user.id)
    return MessageResponse(message="Logged out successfully", message_hi="सफलतापूर्वक लॉग आउट हो गया")


@router.get("/validate-token", response_model=ValidateTokenResponse)
async def validate_token(user: User = Depends(get_current_user)) -> ValidateTokenResponse:
    """Confirm the bearer token still maps to an admitted user."""
    return ValidateTokenResponse(valid=True, user=user_response(user))


router.add_api_route(
    "/verify-address",
    submit_address,
    methods=["POST"],
    response_model=AddressVerifiedResponse,
)
