"""LocationCache model: content-keyed resolution results with optional expiry."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from location_api.models.base import Base, JSONType, UUIDMixin, utcnow


class LocationCache(Base, UUIDMixin):
    """Cached payload keyed by cache type and a digest of the request parameters."""

    __tablename__ = "location_cache"

    cache_type: Mapped[str] = mapped_column(String(50), nullable=False)
    cache_key: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Any] = mapped_column(JSONType, nullable=False)
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_hit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    __table_args__ = (UniqueConstraint("cache_type", "cache_key", name="uq_location_cache_type_key"),)
