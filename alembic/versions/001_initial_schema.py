"""Initial schema: neighborhoods, users, moderators and posts.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""
    # --- neighborhoods ---
    op.create_table(
        "neighborhoods",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("address_full", sa.String(500), nullable=False),
        sa.Column("postal_code", sa.String(6), nullable=False),
        sa.Column("city", sa.String(50), nullable=False),
        sa.Column("state", sa.String(50), nullable=False),
        sa.Column("country", sa.String(64), server_default="India", nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("geohash", sa.String(12), nullable=False),
        sa.Column("total_residents", sa.Integer(), server_default="0", nullable=False),
        sa.Column("verified_residents", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_posts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("stats_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("status", sa.String(16), server_default="active", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("slug", name="uq_neighborhoods_slug"),
        sa.UniqueConstraint("name", "postal_code", name="uq_neighborhoods_name_postal_code"),
    )
    op.create_index("ix_neighborhoods_postal_code", "neighborhoods", ["postal_code"])
    op.create_index("ix_neighborhoods_geohash", "neighborhoods", ["geohash"])
    op.create_index("ix_neighborhoods_status_verified", "neighborhoods", ["status", "is_verified"])

    op.execute(
        "ALTER TABLE neighborhoods ADD CONSTRAINT ck_neighborhoods_status "
        "CHECK (status IN ('active', 'inactive', 'suspended'))"
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("phone", sa.String(10), nullable=False),
        sa.Column("name", sa.String(50), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("language", sa.String(2), server_default="en", nullable=False),
        sa.Column("notifications", sa.JSON(), nullable=False),
        sa.Column("is_phone_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_address_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("verification_level", sa.String(16), server_default="basic", nullable=False),
        sa.Column("otp_code", sa.String(6), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("otp_attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("otp_challenge_id", sa.String(36), nullable=True),
        sa.Column("role", sa.String(16), server_default="user", nullable=False),
        sa.Column("status", sa.String(16), server_default="active", nullable=False),
        sa.Column("trust_score", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "neighborhood_id",
            sa.BigInteger(),
            sa.ForeignKey("neighborhoods.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("address_full", sa.String(500), nullable=True),
        sa.Column("address_postal_code", sa.String(6), nullable=True),
        sa.Column("address_city", sa.String(50), nullable=True),
        sa.Column("address_state", sa.String(50), nullable=True),
        sa.Column("address_country", sa.String(64), nullable=True),
        sa.Column("address_latitude", sa.Float(), nullable=True),
        sa.Column("address_longitude", sa.Float(), nullable=True),
        sa.Column("address_geohash", sa.String(12), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("phone", name="uq_users_phone"),
    )
    op.create_index("ix_users_neighborhood_id", "users", ["neighborhood_id"])
    op.create_index("ix_users_address_geohash", "users", ["address_geohash"])
    op.create_index("ix_users_status_role", "users", ["status", "role"])

    op.execute("ALTER TABLE users ADD CONSTRAINT ck_users_role CHECK (role IN ('user', 'moderator', 'admin'))")
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_status "
        "CHECK (status IN ('active', 'suspended', 'deleted'))"
    )
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_verification_level "
        "CHECK (verification_level IN ('basic', 'phone', 'address', 'verified'))"
    )
    op.execute("ALTER TABLE users ADD CONSTRAINT ck_users_phone_format CHECK (phone ~ '^[6-9][0-9]{9}$')")

    # --- neighborhood_moderators ---
    op.create_table(
        "neighborhood_moderators",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "neighborhood_id",
            sa.BigInteger(),
            sa.ForeignKey("neighborhoods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(16), server_default="moderator", nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("neighborhood_id", "user_id", name="uq_neighborhood_moderators_member"),
    )

    # --- posts ---
    op.create_table(
        "posts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "neighborhood_id",
            sa.BigInteger(),
            sa.ForeignKey("neighborhoods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), server_default="active", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_posts_neighborhood_status", "posts", ["neighborhood_id", "status"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("posts")
    op.drop_table("neighborhood_moderators")
    op.drop_table("users")
    op.drop_table("neighborhoods")
