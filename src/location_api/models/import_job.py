"""ImportJob model: a queued "find locations for merchant X near point Y" request."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Double, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from location_api.models.base import Base, TimestampMixin, UUIDMixin


class ImportJob(Base, UUIDMixin, TimestampMixin):
    """Durable import queue entry with priority and retry/failure state."""

    __tablename__ = "import_jobs"

    merchant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Normalized name + grid cell; enqueue is idempotent per pair among active jobs
    merchant_key: Mapped[str] = mapped_column(String(255), nullable=False)
    area_key: Mapped[str] = mapped_column(String(64), nullable=False)

    anchor_latitude: Mapped[float] = mapped_column(Double, nullable=False)
    anchor_longitude: Mapped[float] = mapped_column(Double, nullable=False)
    radius_km: Mapped[float] = mapped_column(Double, nullable=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default="100")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending", index=True
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3, server_default="3")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Outcome
    brand_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="SET NULL"), nullable=True
    )
    locations_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    locations_inserted: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    data_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cost_estimate: Mapped[float] = mapped_column(Double, nullable=False, default=0.0, server_default="0")

    # Metadata
    added_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    added_reason: Mapped[str] = mapped_column(String(20), nullable=False, default="manual", server_default="manual")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_import_jobs_next_pending", "status", "priority", "created_at"),
        Index(
            "uq_import_jobs_active_merchant_area",
            "merchant_key",
            "area_key",
            unique=True,
            postgresql_where=text("status IN ('pending', 'processing')"),
            sqlite_where=text("status IN ('pending', 'processing')"),
        ),
    )
