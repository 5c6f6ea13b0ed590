"""Create brands, brand_locations, import_jobs, and location_cache tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_JOB = sa.text("status IN ('pending', 'processing')")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Brands
    op.create_table(
        "brands",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_brands_category", "brands", ["category"])
    op.create_index("ix_brands_created_at", "brands", ["created_at"])

    # Brand locations
    op.create_table(
        "brand_locations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(2), nullable=True),
        sa.Column("latitude", sa.Double(), nullable=False),
        sa.Column("longitude", sa.Double(), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("website", sa.String(), nullable=True),
        sa.Column("regular_hours", postgresql.JSONB(), nullable=True),
        sa.Column("special_hours", postgresql.JSONB(), nullable=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("source_provider", sa.String(50), nullable=False),
        sa.Column("imported_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_brand_locations_brand_id", "brand_locations", ["brand_id"])
    op.create_index("ix_brand_locations_brand_coords", "brand_locations", ["brand_id", "latitude", "longitude"])
    op.create_index("ix_brand_locations_created_at", "brand_locations", ["created_at"])

    # Import queue
    op.create_table(
        "import_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("merchant_name", sa.String(255), nullable=False),
        sa.Column("merchant_key", sa.String(255), nullable=False),
        sa.Column("area_key", sa.String(64), nullable=False),
        sa.Column("anchor_latitude", sa.Double(), nullable=False),
        sa.Column("anchor_longitude", sa.Double(), nullable=False),
        sa.Column("radius_km", sa.Double(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_attempted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("brand_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("locations_found", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("locations_inserted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("data_source", sa.String(50), nullable=True),
        sa.Column("cost_estimate", sa.Double(), nullable=False, server_default="0"),
        sa.Column("added_by", sa.String(255), nullable=True),
        sa.Column("added_reason", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="SET NULL"),
        sa.CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed')", name="ck_import_jobs_status"),
        sa.CheckConstraint(
            "added_reason IN ('manual', 'card_created', 'scheduled', 'initial')", name="ck_import_jobs_added_reason"
        ),
    )
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"])
    op.create_index("ix_import_jobs_created_at", "import_jobs", ["created_at"])
    op.create_index("ix_import_jobs_next_pending", "import_jobs", ["status", "priority", "created_at"])
    op.create_index(
        "uq_import_jobs_active_merchant_area",
        "import_jobs",
        ["merchant_key", "area_key"],
        unique=True,
        postgresql_where=_ACTIVE_JOB,
    )

    # Resolution cache
    op.create_table(
        "location_cache",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cache_type", sa.String(50), nullable=False),
        sa.Column("cache_key", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("hit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_hit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cache_type", "cache_key", name="uq_location_cache_type_key"),
    )
    op.create_index("ix_location_cache_expires_at", "location_cache", ["expires_at"])

    # Queue statistics view
    op.execute(
        """
        CREATE VIEW import_queue_stats AS
        SELECT
            status,
            COUNT(*) AS count,
            AVG(locations_found) AS avg_locations_found,
            AVG(attempts) AS avg_attempts,
            SUM(cost_estimate) AS total_cost,
            MIN(created_at) AS oldest_created_at,
            MAX(updated_at) AS latest_updated_at
        FROM import_jobs
        GROUP BY status
        """
    )


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS import_queue_stats")
    op.drop_table("location_cache")
    op.drop_index("uq_import_jobs_active_merchant_area", table_name="import_jobs")
    op.drop_table("import_jobs")
    op.drop_table("brand_locations")
    op.drop_table("brands")
