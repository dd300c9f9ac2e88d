"""User profile schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from mohallahub.auth.schemas import AddressResponse, UserResponse
from mohallahub.db.models import User


class NeighborProfile(BaseModel):
    """Profile of another resident as seen by a neighbor."""

    id: int
    display_name: str
    avatar_url: str | None = None
    verification_level: str
    trust_score: int
    role: str
    joined_at: datetime | None = None
    last_active_at: datetime | None = None


class NeighborListResponse(BaseModel):
    users: list[NeighborProfile]
    total: int
    page: int
    limit: int
    pages: int


class NeighborSearchResponse(BaseModel):
    users: list[NeighborProfile]
    count: int


class AvatarRequest(BaseModel):
    avatar_url: str = Field(..., min_length=1, max_length=2048)

    @field_validator("avatar_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            msg = "Avatar URL must be an http(s) URL"
            raise ValueError(msg)
        return v


def user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    address = None
    if user.address_full is not None:
        address = AddressResponse(
            full_address=user.address_full,
            pincode=user.address_postal_code,
            city=user.address_city,
            state=user.address_state,
            country=user.address_country,
            latitude=user.address_latitude,
            longitude=user.address_longitude,
            geohash=user.address_geohash,
        )
    return UserResponse(
        id=user.id,
        phone=user.phone,
        name=user.name,
        display_name=user.display_name,
        email=user.email,
        avatar_url=user.avatar_url,
        language=user.language,
        notifications=dict(user.notifications or {}),
        is_phone_verified=user.is_phone_verified,
        is_address_verified=user.is_address_verified,
        verification_level=user.verification_level,
        role=user.role,
        status=user.status,
        trust_score=user.trust_score,
        neighborhood_id=user.neighborhood_id,
        address=address,
        joined_at=user.joined_at,
        last_active_at=user.last_active_at,
    )


def neighbor_profile(user: User) -> NeighborProfile:
    return NeighborProfile(
        id=user.id,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        verification_level=user.verification_level,
        trust_score=user.trust_score,
        role=user.role,
        joined_at=user.joined_at,
        last_active_at=user.last_active_at,
    )
