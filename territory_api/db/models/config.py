from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from territory_api.db.base import ID_LENGTH, Base, StringPkMixin, TimestampMixin


class UserConfig(StringPkMixin, TimestampMixin, Base):
    """Per-user settings for paper format, image rendering and the IGN map service."""
    __tablename__ = "userConfigs"

    user_id: Mapped[str] = mapped_column(
        "userId", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Paper / canvas
    ppp: Mapped[int] = mapped_column(Integer, nullable=False, default=250)
    ratio_x: Mapped[float] = mapped_column("ratioX", Numeric(10, 6, asdecimal=False), nullable=False, default=1.618)
    ratio_y: Mapped[float] = mapped_column("ratioY", Numeric(10, 6, asdecimal=False), nullable=False, default=1.0)
    large_ratio_x: Mapped[float] = mapped_column(
        "largeRatioX", Numeric(10, 6, asdecimal=False), nullable=False, default=1.0
    )
    large_ratio_y: Mapped[float] = mapped_column(
        "largeRatioY", Numeric(10, 6, asdecimal=False), nullable=False, default=1.618
    )
    large_factor: Mapped[float] = mapped_column(
        "largeFactor", Numeric(5, 3, asdecimal=False), nullable=False, default=0.2
    )

    # Image generation
    contour_color: Mapped[str] = mapped_column("contourColor", String(50), nullable=False, default="red")
    contour_width: Mapped[int] = mapped_column("contourWidth", Integer, nullable=False, default=8)
    thumbnail_width: Mapped[int] = mapped_column("thumbnailWidth", Integer, nullable=False, default=500)
    palette: Mapped[str] = mapped_column(Text, nullable=False)  # JSON list of rgba() strings

    # Network
    network_retries: Mapped[int] = mapped_column("networkRetries", Integer, nullable=False, default=3)
    network_delay: Mapped[int] = mapped_column("networkDelay", Integer, nullable=False, default=1000)
    ign_api_rate_limit: Mapped[int] = mapped_column("ignApiRateLimit", Integer, nullable=False, default=40)

    # IGN WMS
    ign_api_base_url: Mapped[str] = mapped_column(
        "ignApiBaseUrl", String(255), nullable=False, default="https://data.geopf.fr/wms-r"
    )
    ign_api_layer: Mapped[str] = mapped_column(
        "ignApiLayer", String(255), nullable=False, default="GEOGRAPHICALGRIDSYSTEMS.PLANIGNV2"
    )
    ign_api_format: Mapped[str] = mapped_column("ignApiFormat", String(50), nullable=False, default="image/png")
    ign_api_crs: Mapped[str] = mapped_column("ignApiCRS", String(50), nullable=False, default="EPSG:4326")
