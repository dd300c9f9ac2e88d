"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = r"^[6-9][0-9]{9}$"
OTP_PATTERN = r"^[0-9]{6}$"
PINCODE_PATTERN = r"^[0-9]{6}$"
NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
PLACE_PATTERN = re.compile(r"^[a-zA-Z\s]+$")

SUPPORTED_LANGUAGES = ("en", "hi")


def _validate_language(v: str | None) -> str | None:
    if v is not None and v not in SUPPORTED_LANGUAGES:
        msg = "Language must be either en or hi"
        raise ValueError(msg)
    return v


# ---------------------------------------------------------------------------
# Phone + OTP
# ---------------------------------------------------------------------------


class PhoneRequest(BaseModel):
    """Login or resend-OTP request."""

    phone: str = Field(..., pattern=PHONE_PATTERN)


class RegisterRequest(BaseModel):
    """Register a new account by phone number."""

    phone: str = Field(..., pattern=PHONE_PATTERN)
    name: str | None = Field(None, min_length=2, max_length=50)
    language: str = "en"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not NAME_PATTERN.match(v):
            msg = "Name can only contain letters and spaces"
            raise ValueError(msg)
        return v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        return _validate_language(v)  # type: ignore[return-value]


class VerifyOtpRequest(BaseModel):
    """Submit the code received by SMS."""

    phone: str = Field(..., pattern=PHONE_PATTERN)
    otp: str = Field(..., pattern=OTP_PATTERN)


class OtpSentResponse(BaseModel):
    """Acknowledgement that a code was sent. ``otp`` is only set in development."""

    success: bool = True
    message: str
    message_hi: str
    user_id: int
    is_new_user: bool = False
    otp: str | None = None


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class VerifyAddressRequest(BaseModel):
    """Address submitted for neighborhood assignment."""

    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    full_address: str = Field(..., min_length=10, max_length=500)
    city: str = Field(..., min_length=2, max_length=50)
    state: str = Field(..., min_length=2, max_length=50)
    coordinates: Coordinates | None = None

    @field_validator("full_address")
    @classmethod
    def strip_address(cls, v: str) -> str:
        return v.strip()

    @field_validator("city", "state")
    @classmethod
    def validate_place(cls, v: str) -> str:
        v = v.strip()
        if not PLACE_PATTERN.match(v):
            msg = "Must contain only letters and spaces"
            raise ValueError(msg)
        return v


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class UpdateProfileRequest(BaseModel):
    """Partial profile update; omitted fields are left unchanged."""

    name: str | None = Field(None, min_length=2, max_length=50)
    email: EmailStr | None = None
    language: str | None = None
    notifications: dict[str, bool] | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not NAME_PATTERN.match(v):
            msg = "Name can only contain letters and spaces"
            raise ValueError(msg)
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        """Normalize email to lowercase."""
        return v.lower().strip() if v else v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str | None) -> str | None:
        return _validate_language(v)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class AddressResponse(BaseModel):
    full_address: str | None = None
    pincode: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    geohash: str | None = None


class UserResponse(BaseModel):
    """Full profile of the authenticated user."""

    id: int
    phone: str
    name: str | None = None
    display_name: str
    email: str | None = None
    avatar_url: str | None = None
    language: str
    notifications: dict[str, Any]
    is_phone_verified: bool
    is_address_verified: bool
    verification_level: str
    role: str
    status: str
    trust_score: int
    neighborhood_id: int | None = None
    address: AddressResponse | None = None
    joined_at: datetime | None = None
    last_active_at: datetime | None = None


class SessionResponse(BaseModel):
    """Token issued after a successful OTP verification."""

    success: bool = True
    token: str
    token_type: str = "bearer"
    user: UserResponse


class ValidateTokenResponse(BaseModel):
    valid: bool
    user: UserResponse


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    message_hi: str | None = None
