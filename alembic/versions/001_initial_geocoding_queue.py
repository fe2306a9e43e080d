"""Create posts, location_update_queue, and geocoder_cache tables.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_PREDICATE = sa.text("status IN ('pending', 'processing')")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bigint_pk = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

    # Listings; in a shared database this table already exists and is owned by the marketplace
    op.create_table(
        "posts",
        sa.Column("id", bigint_pk, autoincrement=True, nullable=False),
        sa.Column("post_address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Double(), nullable=True),
        sa.Column("longitude", sa.Double(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    # Geocoding queue
    op.create_table(
        "location_update_queue",
        sa.Column("id", bigint_pk, autoincrement=True, nullable=False),
        sa.Column("subject_id", sa.BigInteger(), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_retries", sa.Integer(), server_default="3", nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_location_queue_status",
        ),
        sa.CheckConstraint("retry_count <= max_retries", name="ck_location_queue_retry_ceiling"),
    )
    op.create_index("ix_location_update_queue_subject_id", "location_update_queue", ["subject_id"])
    op.create_index("ix_location_update_queue_status", "location_update_queue", ["status"])
    op.create_index("ix_location_update_queue_created_at", "location_update_queue", ["created_at"])
    op.create_index("ix_location_queue_claim", "location_update_queue", ["status", "created_at"])
    op.create_index(
        "uq_location_queue_active_subject",
        "location_update_queue",
        ["subject_id"],
        unique=True,
        postgresql_where=_ACTIVE_PREDICATE,
        sqlite_where=_ACTIVE_PREDICATE,
    )

    # Geocoder cache
    op.create_table(
        "geocoder_cache",
        sa.Column("id", bigint_pk, autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("normalized_address", sa.Text(), nullable=False),
        sa.Column("latitude", sa.Double(), nullable=False),
        sa.Column("longitude", sa.Double(), nullable=False),
        sa.Column("matched_address", sa.Text(), nullable=True),
        sa.Column("raw_response", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=True),
        sa.Column("cached_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "normalized_address", name="uq_geocoder_cache_provider_address"),
    )
    op.create_index("ix_geocoder_cache_cached_at", "geocoder_cache", ["cached_at"])


def downgrade() -> None:
    op.drop_index("ix_geocoder_cache_cached_at", table_name="geocoder_cache")
    op.drop_table("geocoder_cache")

    op.drop_index("uq_location_queue_active_subject", table_name="location_update_queue")
    op.drop_index("ix_location_queue_claim", table_name="location_update_queue")
    op.drop_index("ix_location_update_queue_created_at", table_name="location_update_queue")
    op.drop_index("ix_location_update_queue_status", table_name="location_update_queue")
    op.drop_index("ix_location_update_queue_subject_id", table_name="location_update_queue")
    op.drop_table("location_update_queue")

    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_table("posts")
