"""
Neighborhood resolution, address verification and directory queries.

Neighborhoods are keyed by postal code and created lazily the first time a
resident verifies an address there. Storage-level unique constraints on
(name, postal_code) and slug decide concurrent first registrations; the loser
reuses the winner's row.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from mohallahub.config import get_settings
from mohallahub.db.models import Neighborhood, NeighborhoodModerator, Post, User
from mohallahub.errors import ConflictError, NotFoundError
from mohallahub.neighborhoods.geo import (
    DEFAULT_COORDINATES,
    bounding_box,
    encode_geohash,
    haversine_distance_m,
)
from mohallahub.users.service import refresh_verification_level

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

Coordinates = tuple[float, float]


class NeighborhoodConflictError(ConflictError):
    default_detail = "Neighborhood already exists"
    default_detail_hi = "मोहल्ला पहले से मौजूद है"


def slugify(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', strip edge separators."""
    return _NON_ALNUM.sub("-", name.lower()).strip("-")


def default_neighborhood_name(city: str, postal_code: str) -> str:
    return f"{city} - {postal_code}"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_neighborhood(db: AsyncSession, neighborhood_id: int) -> Neighborhood | None:
    """Fetch a neighborhood by ID."""
    result = await db.execute(select(Neighborhood).where(Neighborhood.id == neighborhood_id))
    return result.scalar_one_or_none()


async def get_neighborhood_by_postal_code(db: AsyncSession, postal_code: str) -> Neighborhood | None:
    """Oldest neighborhood registered for a postal code."""
    result = await db.execute(
        select(Neighborhood)
        .where(Neighborhood.postal_code == postal_code)
        .order_by(Neighborhood.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _get_by_name_and_postal_code(db: AsyncSession, name: str, postal_code: str) -> Neighborhood | None:
    result = await db.execute(
        select(Neighborhood)
        .where(Neighborhood.name == name)
        .where(Neighborhood.postal_code == postal_code)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Creation and resolution
# ---------------------------------------------------------------------------


def _build_neighborhood(
    name: str,
    postal_code: str,
    full_address: str,
    city: str,
    state: str,
    coordinates: Coordinates | None,
    country: str,
) -> Neighborhood:
    settings = get_settings()
    latitude, longitude = coordinates if coordinates is not None else DEFAULT_COORDINATES
    now = datetime.now(timezone.utc)
    return Neighborhood(
        name=name,
        slug=slugify(name),
        address_full=full_address,
        postal_code=postal_code,
        city=city,
        state=state,
        country=country,
        latitude=latitude,
        longitude=longitude,
        geohash=encode_geohash(latitude, longitude, settings.geohash_precision),
        total_residents=0,
        verified_residents=0,
        total_posts=0,
        is_verified=False,
        status="active",
        created_at=now,
        updated_at=now,
    )


async def _insert(db: AsyncSession, neighborhood: Neighborhood) -> None:
    async with db.begin_nested():
        db.add(neighborhood)


async def create_neighborhood(
    db: AsyncSession,
    name: str,
    postal_code: str,
    full_address: str,
    city: str,
    state: str,
    coordinates: Coordinates | None = None,
    country: str | None = None,
) -> Neighborhood:
    """
    Create a neighborhood.

    Raises:
        NeighborhoodConflictError: If (name, postal_code) or the derived slug is taken.
    """
    if await _get_by_name_and_postal_code(db, name, postal_code) is not None:
        raise NeighborhoodConflictError

    neighborhood = _build_neighborhood(
        name, postal_code, full_address, city, state, coordinates, country or get_settings().default_country
    )
    try:
        await _insert(db, neighborhood)
    except IntegrityError as e:
        raise NeighborhoodConflictError from e

    logger.info("neighborhood_created", neighborhood_id=neighborhood.id, postal_code=postal_code)
    return neighborhood


async def resolve_neighborhood(
    db: AsyncSession,
    postal_code: str,
    full_address: str,
    city: str,
    state: str,
    coordinates: Coordinates | None = None,
) -> Neighborhood:
    """
    Find the neighborhood for ``postal_code`` or create it.

    An existing row is returned unchanged even when the new address or
    coordinates differ. A unique-constraint conflict on creation means a
    concurrent request created it first; that row is fetched and reused.
    """
    existing = await get_neighborhood_by_postal_code(db, postal_code)
    if existing is not None:
        return existing

    settings = get_settings()
    neighborhood = _build_neighborhood(
        default_neighborhood_name(city, postal_code),
        postal_code,
        full_address,
        city,
        state,
        coordinates,
        settings.default_country,
    )
    try:
        await _insert(db, neighborhood)
    except IntegrityError:
        winner = await get_neighborhood_by_postal_code(db, postal_code)
        if winner is None:
            raise
        logger.info("neighborhood_create_race_lost", neighborhood_id=winner.id, postal_code=postal_code)
        return winner

    logger.info("neighborhood_created", neighborhood_id=neighborhood.id, postal_code=postal_code)
    return neighborhood


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


async def refresh_stats(db: AsyncSession, neighborhood: Neighborhood) -> Neighborhood:
    """Recompute resident and post counters from live rows (point-in-time snapshot)."""
    residents = await db.execute(
        select(func.count())
        .select_from(User)
        .where(User.neighborhood_id == neighborhood.id, User.status == "active")
    )
    verified = await db.execute(
        select(func.count())
        .select_from(User)
        .where(
            User.neighborhood_id == neighborhood.id,
            User.status == "active",
            User.is_phone_verified.is_(True),
            User.is_address_verified.is_(True),
        )
    )
    posts = await db.execute(
        select(func.count())
        .select_from(Post)
        .where(Post.neighborhood_id == neighborhood.id, Post.status == "active")
    )

    neighborhood.total_residents = int(residents.scalar_one())
    neighborhood.verified_residents = int(verified.scalar_one())
    neighborhood.total_posts = int(posts.scalar_one())
    neighborhood.stats_refreshed_at = datetime.now(timezone.utc)
    await db.flush()
    return neighborhood


# ---------------------------------------------------------------------------
# Address verification
# ---------------------------------------------------------------------------


async def verify_address(
    db: AsyncSession,
    user: User,
    postal_code: str,
    full_address: str,
    city: str,
    state: str,
    coordinates: Coordinates | None = None,
) -> tuple[User, Neighborhood]:
    """Link ``user`` to the neighborhood for ``postal_code`` and mark the address verified."""
    neighborhood = await resolve_neighborhood(db, postal_code, full_address, city, state, coordinates)
    latitude, longitude = coordinates if coordinates is not None else DEFAULT_COORDINATES

    user.neighborhood_id = neighborhood.id
    user.address_full = full_address
    user.address_postal_code = postal_code
    user.address_city = city
    user.address_state = state
    user.address_country = neighborhood.country
    user.address_latitude = latitude
    user.address_longitude = longitude
    user.address_geohash = neighborhood.geohash
    user.is_address_verified = True
    refresh_verification_level(user)
    user.updated_at = datetime.now(timezone.utc)
    await db.flush()

    await refresh_stats(db, neighborhood)
    logger.info("address_verified", user_id=user.id, neighborhood_id=neighborhood.id)
    return user, neighborhood


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


def is_within_boundary(
    neighborhood: Neighborhood,
    latitude: float,
    longitude: float,
    radius_m: float | None = None,
) -> bool:
    """Whether a point lies within ``radius_m`` of the neighborhood center."""
    limit = radius_m if radius_m is not None else get_settings().boundary_radius_meters
    return haversine_distance_m(neighborhood.latitude, neighborhood.longitude, latitude, longitude) <= limit


async def find_nearby(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    radius_m: float | None = None,
    verified_only: bool = False,
) -> list[tuple[Neighborhood, float]]:
    """Active neighborhoods within ``radius_m``, nearest first, with distances in meters."""
    radius = radius_m if radius_m is not None else get_settings().nearby_radius_meters
    min_lat, min_lng, max_lat, max_lng = bounding_box(latitude, longitude, radius)

    stmt = select(Neighborhood).where(
        Neighborhood.status == "active",
        Neighborhood.latitude.between(min_lat, max_lat),
        Neighborhood.longitude.between(min_lng, max_lng),
    )
    if verified_only:
        stmt = stmt.where(Neighborhood.is_verified.is_(True))

    candidates = (await db.execute(stmt)).scalars().all()
    matches = [
        (n, haversine_distance_m(latitude, longitude, n.latitude, n.longitude)) for n in candidates
    ]
    return sorted((m for m in matches if m[1] <= radius), key=lambda m: m[1])


async def find_by_geohash_prefix(db: AsyncSession, prefix: str) -> list[Neighborhood]:
    """Active neighborhoods whose geohash starts with ``prefix``."""
    result = await db.execute(
        select(Neighborhood)
        .where(Neighborhood.status == "active")
        .where(Neighborhood.geohash.startswith(prefix.lower(), autoescape=True))
        .order_by(Neighborhood.geohash)
    )
    return list(result.scalars().all())


async def search_neighborhoods(
    db: AsyncSession,
    postal_code: str | None = None,
    city: str | None = None,
    state: str | None = None,
    limit: int | None = None,
) -> list[Neighborhood]:
    """Filter active neighborhoods; city and state match case-insensitive substrings."""
    stmt = select(Neighborhood).where(Neighborhood.status == "active")
    if postal_code:
        stmt = stmt.where(Neighborhood.postal_code == postal_code)
    if city:
        stmt = stmt.where(func.lower(Neighborhood.city).contains(city.lower(), autoescape=True))
    if state:
        stmt = stmt.where(func.lower(Neighborhood.state).contains(state.lower(), autoescape=True))
    stmt = stmt.order_by(Neighborhood.total_residents.desc(), Neighborhood.id).limit(
        limit or get_settings().search_result_limit
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_members(db: AsyncSession, neighborhood_id: int) -> list[User]:
    """Active members of a neighborhood, earliest joiners first."""
    result = await db.execute(
        select(User)
        .where(User.neighborhood_id == neighborhood_id, User.status == "active")
        .order_by(User.joined_at, User.id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Moderators
# ---------------------------------------------------------------------------


async def list_moderators(db: AsyncSession, neighborhood_id: int) -> list[NeighborhoodModerator]:
    result = await db.execute(
        select(NeighborhoodModerator)
        .where(NeighborhoodModerator.neighborhood_id == neighborhood_id)
        .order_by(NeighborhoodModerator.assigned_at)
    )
    return list(result.scalars().all())


async def add_moderator(
    db: AsyncSession,
    neighborhood: Neighborhood,
    user_id: int,
    role: str = "moderator",
) -> NeighborhoodModerator:
    """
    Grant a moderation role in ``neighborhood``. Re-adding an existing moderator is a no-op.

    Raises:
        NotFoundError: If the user does not exist.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", "उपयोगकर्ता नहीं मिला")

    result = await db.execute(
        select(NeighborhoodModerator).where(
            NeighborhoodModerator.neighborhood_id == neighborhood.id,
            NeighborhoodModerator.user_id == user_id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    moderator = NeighborhoodModerator(
        neighborhood_id=neighborhood.id,
        user_id=user_id,
        role=role,
        assigned_at=datetime.now(timezone.utc),
    )
    db.add(moderator)
    await db.flush()
    logger.info("moderator_added", neighborhood_id=neighborhood.id, user_id=user_id, role=role)
    return moderator


async def remove_moderator(db: AsyncSession, neighborhood: Neighborhood, user_id: int) -> bool:
    """Revoke a moderation role. Returns True if one was removed."""
    result = await db.execute(
        delete(NeighborhoodModerator).where(
            NeighborhoodModerator.neighborhood_id == neighborhood.id,
            NeighborhoodModerator.user_id == user_id,
        )
        .execution_options(synchronize_session=False)
    )
    removed = bool(result.rowcount)
    if removed:
        logger.info("moderator_removed", neighborhood_id=neighborhood.id, user_id=user_id)
    return removed
