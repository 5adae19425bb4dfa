from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column

from territory_api.db.base import ID_LENGTH, Base, StringPkMixin, TimestampMixin

# GPX documents easily exceed the 64 KiB of a MySQL TEXT column.
LongText = Text().with_variant(mysql.LONGTEXT(), "mysql")

IMAGE_TYPES = ("standard", "original", "large", "originalLarge", "miniature")


class TerritoryData(TimestampMixin, Base):
    """GPX document holding every territory of a user (one row per user)."""
    __tablename__ = "territories"

    user_id: Mapped[str] = mapped_column(
        "userId", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    data: Mapped[str] = mapped_column(LongText, nullable=False)


class TerritoryImage(StringPkMixin, TimestampMixin, Base):
    """Metadata of an image file generated or uploaded for a territory."""
    __tablename__ = "images"
    __table_args__ = (
        UniqueConstraint("userId", "territoryNumber", "imageType", name="uq_images_user_territory_type"),
    )

    user_id: Mapped[str] = mapped_column(
        "userId", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    territory_number: Mapped[str] = mapped_column("territoryNumber", String(50), nullable=False)
    image_type: Mapped[str] = mapped_column("imageType", String(20), nullable=False)
    file_name: Mapped[str] = mapped_column("fileName", String(255), nullable=False)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bbox: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON [minLon, minLat, maxLon, maxLat]
    rotation: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    crop_data: Mapped[Optional[str]] = mapped_column("cropData", Text, nullable=True)  # JSON


class TerritoryLayer(StringPkMixin, TimestampMixin, Base):
    """Paint layer drawn over a standard or large territory image."""
    __tablename__ = "layers"

    user_id: Mapped[str] = mapped_column(
        "userId", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    territory_number: Mapped[str] = mapped_column("territoryNumber", String(50), nullable=False)
    image_type: Mapped[str] = mapped_column("imageType", String(20), nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    style: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    layer_type: Mapped[str] = mapped_column("layerType", String(20), nullable=False)
    layer_data: Mapped[str] = mapped_column("layerData", Text, nullable=False)  # JSON
