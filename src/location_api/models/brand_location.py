"""BrandLocation model: a physical location of a brand."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Double, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from location_api.models.base import Base, JSONType, TimestampMixin, UUIDMixin, utcnow


class BrandLocation(Base, UUIDMixin, TimestampMixin):
    """Physical brand location with address, coordinates, contact info and hours."""

    __tablename__ = "brand_locations"

    brand_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    latitude: Mapped[float] = mapped_column(Double, nullable=False)
    longitude: Mapped[float] = mapped_column(Double, nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website: Mapped[str | None] = mapped_column(String, nullable=True)

    # {"monday": [{"open": "09:00", "close": "17:00"}], ...}
    regular_hours: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    # [{"date": "2025-12-25", "closed": true}, ...]
    special_hours: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    source_provider: Mapped[str] = mapped_column(String(50), nullable=False)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    brand = relationship("Brand", back_populates="locations")

    __table_args__ = (Index("ix_brand_locations_brand_coords", "brand_id", "latitude", "longitude"),)
