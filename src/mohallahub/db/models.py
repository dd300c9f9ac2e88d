"""ORM models for users, neighborhoods and the rows counted into neighborhood stats."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mohallahub.db.base import Base, BigIntPK

USER_ROLES = ("user", "moderator", "admin")
USER_STATUSES = ("active", "suspended", "deleted")
VERIFICATION_LEVELS = ("basic", "phone", "address", "verified")
NEIGHBORHOOD_STATUSES = ("active", "inactive", "suspended")
MODERATOR_ROLES = ("moderator", "admin")
POST_STATUSES = ("active", "hidden", "deleted")

DEFAULT_NOTIFICATIONS: dict[str, bool] = {
    "push": True,
    "email": False,
    "sms": True,
    "safetyAlerts": True,
    "marketplace": True,
    "events": True,
}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A resident, identified by phone number."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_neighborhood_id", "neighborhood_id"),
        Index("ix_users_address_geohash", "address_geohash"),
        Index("ix_users_status_role", "status", "role"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    language: Mapped[str] = mapped_column(String(2), nullable=False, default="en", server_default="en")
    notifications: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=lambda: dict(DEFAULT_NOTIFICATIONS))

    # --- Verification ---
    is_phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_address_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    verification_level: Mapped[str] = mapped_column(String(16), nullable=False, default="basic", server_default="basic")

    # --- Outstanding OTP challenge ---
    otp_code: Mapped[str | None] = mapped_column(String(6), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    otp_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    otp_challenge_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # --- Account ---
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user", server_default="user")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # --- Neighborhood + verified address ---
    neighborhood_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("neighborhoods.id", ondelete="SET NULL"), nullable=True
    )
    address_full: Mapped[str | None] = mapped_column(String(500), nullable=True)
    address_postal_code: Mapped[str | None] = mapped_column(String(6), nullable=True)
    address_city: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address_country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address_geohash: Mapped[str | None] = mapped_column(String(12), nullable=True)

    # --- Timestamps ---
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    neighborhood: Mapped[Neighborhood | None] = relationship("Neighborhood", lazy="raise")

    @property
    def display_name(self) -> str:
        return self.name or f"User{self.phone[-4:]}"


# ---------------------------------------------------------------------------
# Neighborhoods
# ---------------------------------------------------------------------------


class Neighborhood(Base):
    """A community bucket keyed by postal code."""

    __tablename__ = "neighborhoods"
    __table_args__ = (
        UniqueConstraint("name", "postal_code", name="uq_neighborhoods_name_postal_code"),
        Index("ix_neighborhoods_postal_code", "postal_code"),
        Index("ix_neighborhoods_geohash", "geohash"),
        Index("ix_neighborhoods_status_verified", "status", "is_verified"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    address_full: Mapped[str] = mapped_column(String(500), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(6), nullable=False)
    city: Mapped[str] = mapped_column(String(50), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="India", server_default="India")
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    geohash: Mapped[str] = mapped_column(String(12), nullable=False)

    # Snapshot counters, recomputed by refresh_stats()
    total_residents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    verified_residents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_posts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    stats_refreshed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    moderators: Mapped[list[NeighborhoodModerator]] = relationship(
        "NeighborhoodModerator", back_populates="neighborhood", lazy="raise"
    )

    @property
    def display_name(self) -> str:
        return f"{self.name}, {self.city}"

    @property
    def formatted_address(self) -> str:
        return f"{self.address_full}, {self.city}, {self.state} - {self.postal_code}"


class NeighborhoodModerator(Base):
    """A user holding a moderation role within one neighborhood."""

    __tablename__ = "neighborhood_moderators"
    __table_args__ = (
        UniqueConstraint("neighborhood_id", "user_id", name="uq_neighborhood_moderators_member"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    neighborhood_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("neighborhoods.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="moderator", server_default="moderator")
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    neighborhood: Mapped[Neighborhood] = relationship("Neighborhood", back_populates="moderators")


# ---------------------------------------------------------------------------
# Posts (count source for neighborhood stats)
# ---------------------------------------------------------------------------


class Post(Base):
    """A neighborhood feed post."""

    __tablename__ = "posts"
    __table_args__ = (Index("ix_posts_neighborhood_status", "neighborhood_id", "status"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    neighborhood_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("neighborhoods.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
