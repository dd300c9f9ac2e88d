"""Neighborhood request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from mohallahub.auth.schemas import UserResponse
from mohallahub.db.models import MODERATOR_ROLES, Neighborhood, NeighborhoodModerator
from mohallahub.users.schemas import NeighborProfile


class NeighborhoodStats(BaseModel):
    total_residents: int
    verified_residents: int
    total_posts: int
    refreshed_at: datetime | None = None


class NeighborhoodResponse(BaseModel):
    id: int
    name: str
    slug: str
    display_name: str
    description: str | None = None
    full_address: str
    formatted_address: str
    pincode: str
    city: str
    state: str
    country: str
    latitude: float
    longitude: float
    geohash: str
    is_verified: bool
    status: str
    stats: NeighborhoodStats
    created_at: datetime | None = None


class NearbyNeighborhood(BaseModel):
    neighborhood: NeighborhoodResponse
    distance_m: float


class NearbyResponse(BaseModel):
    neighborhoods: list[NearbyNeighborhood]
    count: int
    radius_m: float


class SearchResponse(BaseModel):
    neighborhoods: list[NeighborhoodResponse]
    count: int


class NeighborhoodStatsResponse(BaseModel):
    neighborhood_id: int
    stats: NeighborhoodStats
    members: list[NeighborProfile]


class AddressVerifiedResponse(BaseModel):
    """Result of address verification. The token carries the new neighborhood claim."""

    success: bool = True
    message: str
    message_hi: str
    token: str
    user: UserResponse
    neighborhood: NeighborhoodResponse


class ModeratorRequest(BaseModel):
    user_id: int = Field(..., gt=0)
    role: str = Field("moderator", pattern="^(" + "|".join(MODERATOR_ROLES) + ")$")


class ModeratorResponse(BaseModel):
    neighborhood_id: int
    user_id: int
    role: str
    assigned_at: datetime


def neighborhood_response(neighborhood: Neighborhood) -> NeighborhoodResponse:
    """Build a NeighborhoodResponse from a Neighborhood model."""
    return NeighborhoodResponse(
        id=neighborhood.id,
        name=neighborhood.name,
        slug=neighborhood.slug,
        display_name=neighborhood.display_name,
        description=neighborhood.description,
        full_address=neighborhood.address_full,
        formatted_address=neighborhood.formatted_address,
        pincode=neighborhood.postal_code,
        city=neighborhood.city,
        state=neighborhood.state,
        country=neighborhood.country,
        latitude=neighborhood.latitude,
        longitude=neighborhood.longitude,
        geohash=neighborhood.geohash,
        is_verified=neighborhood.is_verified,
        status=neighborhood.status,
        stats=NeighborhoodStats(
            total_residents=neighborhood.total_residents,
            verified_residents=neighborhood.verified_residents,
            total_posts=neighborhood.total_posts,
            refreshed_at=neighborhood.stats_refreshed_at,
        ),
        created_at=neighborhood.created_at,
    )


def moderator_response(moderator: NeighborhoodModerator) -> ModeratorResponse:
    return ModeratorResponse(
        neighborhood_id=moderator.neighborhood_id,
        user_id=moderator.user_id,
        role=moderator.role,
        assigned_at=moderator.assigned_at,
    )
