"""User directory router: all /api/v1/users/* endpoints."""

from __future__ import annotations

import math

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub.auth.dependencies import get_current_user, require_verified_address
from mohallahub.auth.schemas import UserResponse
from mohallahub.database import get_session
from mohallahub.db.models import User
from mohallahub.users.schemas import (
    AvatarRequest,
    NeighborListResponse,
    NeighborProfile,
    NeighborSearchResponse,
    neighbor_profile,
    user_response,
)
from mohallahub.users.service import (
    get_neighbor_profile,
    list_neighborhood_users,
    search_neighborhood_users,
    update_avatar,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/neighborhood", response_model=NeighborListResponse)
async def neighborhood_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_verified_address),
    db: AsyncSession = Depends(get_session),
) -> NeighborListResponse:
    """Paginated list of residents in the caller's neighborhood."""
    users, total = await list_neighborhood_users(db, user.neighborhood_id, page=page, limit=limit)  # type: ignore[arg-type]
    return NeighborListResponse(
        users=[neighbor_profile(u) for u in users],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/search", response_model=NeighborSearchResponse)
async def search_users(
    query: str = Query(..., min_length=2, max_length=50),
    user: User = Depends(require_verified_address),
    db: AsyncSession = Depends(get_session),
) -> NeighborSearchResponse:
    """Search residents of the caller's neighborhood by name."""
    users = await search_neighborhood_users(db, user.neighborhood_id, query.strip())  # type: ignore[arg-type]
    return NeighborSearchResponse(users=[neighbor_profile(u) for u in users], count=len(users))


@router.put("/avatar", response_model=UserResponse)
async def set_avatar(
    body: AvatarRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Set the caller's avatar URL."""
    user = await update_avatar(db, user, body.avatar_url)
    await db.commit()
    logger.info("avatar_updated", user_id=user.id)
    return user_response(user)


@router.get("/{user_id}", response_model=NeighborProfile)
async def get_user(
    user_id: int,
    viewer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NeighborProfile:
    """View a neighbor's public profile."""
    target = await get_neighbor_profile(db, viewer, user_id)
    return neighbor_profile(target)
