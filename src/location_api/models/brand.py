"""Brand model: a named merchant that issues cards and owns physical locations."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from location_api.models.base import Base, TimestampMixin, UUIDMixin


class Brand(Base, UUIDMixin, TimestampMixin):
    """Merchant brand keyed by its canonical (case/whitespace-folded) name."""

    __tablename__ = "brands"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    locations = relationship("BrandLocation", back_populates="brand", cascade="all, delete-orphan")
