from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .common import CamelModel

ImageKind = Literal["standard", "large"]
LayerKind = Literal["brush", "line", "arrow", "circle", "rectangle", "text", "parking", "compass"]

# Territory numbers are part of image file names.
TERRITORY_NUMBER_PATTERN = r"^\w[\w .-]*$"
_TERRITORY_NUMBER = re.compile(TERRITORY_NUMBER_PATTERN)


def check_territory_number(value: str) -> str:
    """Reject numbers holding path separators or parent references."""
    if not _TERRITORY_NUMBER.fullmatch(value) or ".." in value:
        raise ValueError("api.error.territory.invalidNumber")
    return value


class Coord(BaseModel):
    lat: float
    lon: float


class TerritoryIn(CamelModel):
    """Territory as sent by the client when generating or saving images."""
    num: str = Field(..., description="Territory number")
    polygon: List[Coord] = Field(..., description="Ordered outline")
    name: str = Field(default="")
    rotation: Optional[float] = Field(default=None, description="Rotation in radians")
    current_bbox_large: Optional[Tuple[float, float, float, float]] = Field(default=None)

    @field_validator("num")
    @classmethod
    def _num(cls, v: str) -> str:
        return check_territory_number(v)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "num": self.num,
            "name": self.name,
            "polygon": [c.model_dump() for c in self.polygon],
            "rotation": self.rotation,
        }


class ContourOptions(CamelModel):
    contour_color: Optional[str] = None
    contour_width: Optional[int] = Field(default=None, ge=1, le=50)


class GenerateImageRequest(CamelModel):
    """Generate the standard or large image of a territory from the map service."""
    territory: TerritoryIn
    image_type: ImageKind
    options: Optional[ContourOptions] = None

    @field_validator("territory")
    @classmethod
    def _has_polygon(cls, v: TerritoryIn) -> TerritoryIn:
        if not v.polygon:
            raise ValueError("api.error.territory.emptyPolygon")
        return v


class CropData(CamelModel):
    x: float
    y: float
    width: float
    height: float
    image_width: float
    image_height: float


class GenerateImageWithCropRequest(CamelModel):
    """Generate a large image framed on a bounding box chosen by the user."""
    territory: TerritoryIn
    custom_bbox: Tuple[float, float, float, float] = Field(..., description="[minLon, minLat, maxLon, maxLat]")
    crop_data: Optional[CropData] = None
    options: Optional[ContourOptions] = None


class SaveTerritoryDataRequest(CamelModel):
    gpx_data: str = Field(..., description="GPX document holding every territory")


class TerritoryDataRead(CamelModel):
    user_id: str
    data: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TerritoryDataResponse(BaseModel):
    success: bool = True
    data: TerritoryDataRead


class TerritoriesResponse(BaseModel):
    success: bool = True
    territories: List[Dict[str, Any]] = Field(default_factory=list)


class ImageRead(CamelModel):
    id: str
    user_id: str
    territory_number: str
    image_type: str
    file_name: str
    width: Optional[int] = None
    height: Optional[int] = None
    bbox: Optional[str] = None
    rotation: Optional[float] = None
    crop_data: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    image_url: Optional[str] = None


class ImagesResponse(BaseModel):
    success: bool = True
    images: List[ImageRead] = Field(default_factory=list)


class PaintLayerIn(BaseModel):
    """Paint layer in the editor's shape; `style` and `data` are free-form JSON."""
    id: Optional[str] = None
    type: LayerKind
    visible: bool = True
    locked: bool = False
    name: Optional[str] = None
    style: Any = None
    data: Any = None


class CompleteImages(BaseModel):
    """Edited images as PNG data URLs (or bare base64)."""
    image: Optional[str] = None
    large: Optional[str] = None
    miniature: Optional[str] = None


class CompleteLayers(CamelModel):
    paint_layers_image: Optional[List[PaintLayerIn]] = None
    paint_layers_large: Optional[List[PaintLayerIn]] = None


class UpdateTerritoryCompleteRequest(BaseModel):
    territory: TerritoryIn
    images: CompleteImages = Field(default_factory=CompleteImages)
    layers: CompleteLayers = Field(default_factory=CompleteLayers)


def _check_json(value: Optional[str]) -> Optional[str]:
    if value is not None:
        try:
            json.loads(value)
        except ValueError:
            raise ValueError("api.error.layer.invalidJson") from None
    return value


class LayerCreate(CamelModel):
    """Single layer creation payload; `style` and `layer_data` are JSON strings."""
    territory_number: Optional[str] = None
    image_type: ImageKind
    visible: Optional[bool] = None
    locked: Optional[bool] = None
    name: Optional[str] = Field(default=None, max_length=100)
    style: str
    layer_type: LayerKind
    layer_data: str

    @field_validator("territory_number")
    @classmethod
    def _territory_number(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_territory_number(v)

    @field_validator("style", "layer_data")
    @classmethod
    def _json(cls, v: str) -> str:
        return _check_json(v)


class LayerUpdate(CamelModel):
    """Partial layer update. Only `name` may be cleared with null."""
    visible: Optional[bool] = None
    locked: Optional[bool] = None
    name: Optional[str] = Field(default=None, max_length=100)
    style: Optional[str] = None
    layer_data: Optional[str] = None

    @field_validator("style", "layer_data")
    @classmethod
    def _json(cls, v: Optional[str]) -> Optional[str]:
        return _check_json(v)

    def to_updates(self) -> Dict[str, Any]:
        """Fields sent by the client, minus nulls on non-nullable columns."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key == "name"
        }


class LayerRead(CamelModel):
    id: str
    user_id: str
    territory_number: str
    image_type: str
    visible: bool
    locked: bool
    name: Optional[str] = None
    style: str
    layer_type: str
    layer_data: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LayerResponse(BaseModel):
    success: bool = True
    data: LayerRead


class LayersResponse(BaseModel):
    success: bool = True
    data: List[LayerRead] = Field(default_factory=list)
