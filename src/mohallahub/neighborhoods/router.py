"""Neighborhood router: all /api/v1/neighborhoods/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub.auth.dependencies import get_current_user, require_roles, require_verified_address
from mohallahub.auth.jwt import issue_session
from mohallahub.auth.schemas import PINCODE_PATTERN, VerifyAddressRequest
from mohallahub.config import get_settings
from mohallahub.database import get_session
from mohallahub.db.models import Neighborhood, User
from mohallahub.errors import NotFoundError
from mohallahub.neighborhoods.schemas import (
    AddressVerifiedResponse,
    ModeratorRequest,
    ModeratorResponse,
    NearbyNeighborhood,
    NearbyResponse,
    NeighborhoodResponse,
    NeighborhoodStats,
    NeighborhoodStatsResponse,
    SearchResponse,
    moderator_response,
    neighborhood_response,
)
from mohallahub.neighborhoods.service import (
    add_moderator,
    find_nearby,
    get_neighborhood,
    list_members,
    refresh_stats,
    remove_moderator,
    search_neighborhoods,
    verify_address,
)
from mohallahub.users.schemas import neighbor_profile, user_response

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/neighborhoods", tags=["Neighborhoods"])


async def _require_neighborhood(db: AsyncSession, neighborhood_id: int) -> Neighborhood:
    neighborhood = await get_neighborhood(db, neighborhood_id)
    if neighborhood is None:
        raise NotFoundError("Neighborhood not found", "मोहल्ला नहीं मिला")
    return neighborhood


async def submit_address(
    body: VerifyAddressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AddressVerifiedResponse:
    """Verify the caller's address and join (or found) the neighborhood for its pincode."""
    coordinates = (body.coordinates.latitude, body.coordinates.longitude) if body.coordinates else None
    user, neighborhood = await verify_address(
        db,
        user,
        postal_code=body.pincode,
        full_address=body.full_address,
        city=body.city,
        state=body.state,
        coordinates=coordinates,
    )
    await db.commit()

    return AddressVerifiedResponse(
        message="Address verified successfully",
        message_hi="पता सफलतापूर्वक सत्यापित हो गया",
        token=issue_session(user),
        user=user_response(user),
        neighborhood=neighborhood_response(neighborhood),
    )


router.add_api_route(
    "/verify-address",
    submit_address,
    methods=["POST"],
    response_model=AddressVerifiedResponse,
)


@router.get("/my", response_model=NeighborhoodResponse)
async def my_neighborhood(
    user: User = Depends(require_verified_address),
    db: AsyncSession = Depends(get_session),
) -> NeighborhoodResponse:
    """The caller's own neighborhood."""
    neighborhood = await _require_neighborhood(db, user.neighborhood_id)  # type: ignore[arg-type]
    return neighborhood_response(neighborhood)


@router.get("/nearby", response_model=NearbyResponse)
async def nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float | None = Query(None, gt=0, le=50_000),
    verified_only: bool = Query(False),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NearbyResponse:
    """Active neighborhoods around a point, nearest first."""
    radius_m = radius if radius is not None else float(get_settings().nearby_radius_meters)
    matches = await find_nearby(db, latitude, longitude, radius_m, verified_only=verified_only)
    return NearbyResponse(
        neighborhoods=[
            NearbyNeighborhood(neighborhood=neighborhood_response(n), distance_m=round(d, 1))
            for n, d in matches
        ],
        count=len(matches),
        radius_m=radius_m,
    )


@router.get("/search", response_model=SearchResponse)
async def search(
    pincode: str | None = Query(None, pattern=PINCODE_PATTERN),
    city: str | None = Query(None, min_length=2, max_length=50),
    state: str | None = Query(None, min_length=2, max_length=50),
    limit: int = Query(20, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SearchResponse:
    """Search neighborhoods by pincode, city or state."""
    results = await search_neighborhoods(db, postal_code=pincode, city=city, state=state, limit=limit)
    return SearchResponse(neighborhoods=[neighborhood_response(n) for n in results], count=len(results))


@router.get("/{neighborhood_id}/stats", response_model=NeighborhoodStatsResponse)
async def neighborhood_stats(
    neighborhood_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NeighborhoodStatsResponse:
    """Recompute and return neighborhood counters together with its members."""
    neighborhood = await _require_neighborhood(db, neighborhood_id)
    await refresh_stats(db, neighborhood)
    members = await list_members(db, neighborhood.id)
    await db.commit()

    return NeighborhoodStatsResponse(
        neighborhood_id=neighborhood.id,
        stats=NeighborhoodStats(
            total_residents=neighborhood.total_residents,
            verified_residents=neighborhood.verified_residents,
            total_posts=neighborhood.total_posts,
            refreshed_at=neighborhood.stats_refreshed_at,
        ),
        members=[neighbor_profile(m) for m in members],
    )


# ---------------------------------------------------------------------------
# Moderators (admin)
# ---------------------------------------------------------------------------


@router.post("/{neighborhood_id}/moderators", response_model=ModeratorResponse, status_code=201)
async def create_moderator(
    neighborhood_id: int,
    body: ModeratorRequest,
    admin: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_session),
) -> ModeratorResponse:
    """Assign a moderator to a neighborhood."""
    neighborhood = await _require_neighborhood(db, neighborhood_id)
    moderator = await add_moderator(db, neighborhood, body.user_id, body.role)
    await db.commit()
    logger.info("moderator_assigned_by_admin", admin_id=admin.id, neighborhood_id=neighborhood.id)
    return moderator_response(moderator)


@router.delete("/{neighborhood_id}/moderators/{user_id}", status_code=204)
async def delete_moderator(
    neighborhood_id: int,
    user_id: int,
    _admin: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Revoke a moderator assignment."""
    neighborhood = await _require_neighborhood(db, neighborhood_id)
    if not await remove_moderator(db, neighborhood, user_id):
        raise NotFoundError("Moderator not found", "मॉडरेटर नहीं मिला")
    await db.commit()
    return Response(status_code=204)
