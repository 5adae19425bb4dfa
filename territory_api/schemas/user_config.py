from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator

from .common import CamelModel


class UserConfigRead(CamelModel):
    """User configuration with the palette decoded."""
    id: str
    user_id: str
    ppp: int
    ratio_x: float
    ratio_y: float
    large_ratio_x: float
    large_ratio_y: float
    large_factor: float
    contour_color: str
    contour_width: int
    thumbnail_width: int
    palette: List[str]
    network_retries: int
    network_delay: int
    ign_api_rate_limit: int
    ign_api_base_url: str
    ign_api_layer: str
    ign_api_format: str
    ign_api_crs: str = Field(..., alias="ignApiCRS")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("palette", mode="before")
    @classmethod
    def _decode_palette(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class UserConfigUpdate(CamelModel):
    """Partial update; every field is optional and range-checked."""
    ppp: Optional[int] = Field(default=None, ge=100, le=300)
    ratio_x: Optional[float] = Field(default=None, ge=0.1, le=10)
    ratio_y: Optional[float] = Field(default=None, ge=0.1, le=10)
    large_ratio_x: Optional[float] = Field(default=None, ge=0.1, le=10)
    large_ratio_y: Optional[float] = Field(default=None, ge=0.1, le=10)
    large_factor: Optional[float] = Field(default=None, ge=0.01, le=1)

    contour_color: Optional[str] = None
    contour_width: Optional[int] = Field(default=None, ge=1, le=50)
    thumbnail_width: Optional[int] = Field(default=None, ge=100, le=1000)
    palette: Optional[List[str]] = None

    network_retries: Optional[int] = Field(default=None, ge=1, le=10)
    network_delay: Optional[int] = Field(default=None, ge=100, le=10000)
    ign_api_rate_limit: Optional[int] = Field(default=None, ge=10, le=1000)

    ign_api_base_url: Optional[AnyHttpUrl] = None
    ign_api_layer: Optional[str] = None
    ign_api_format: Optional[str] = None
    ign_api_crs: Optional[str] = Field(default=None, alias="ignApiCRS")

    def to_updates(self) -> dict:
        """Fields that were sent, keyed by attribute name."""
        updates = self.model_dump(exclude_unset=True)
        if updates.get("ign_api_base_url") is not None:
            updates["ign_api_base_url"] = str(self.ign_api_base_url).rstrip("/")
        return {k: v for k, v in updates.items() if v is not None}


class UserConfigResponse(BaseModel):
    success: bool = True
    config: UserConfigRead
    message: Optional[str] = None
