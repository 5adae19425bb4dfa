from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.deps import get_current_user
from territory_api.core.settings import get_app_settings
from territory_api.db.models.territories import IMAGE_TYPES
from territory_api.db.models.users import User
from territory_api.db.session import get_async_session
from territory_api.repositories.territories import TerritoryRepository, get_image_file_path
from territory_api.schemas.common import SuccessResponse
from territory_api.schemas.territories import (
    TERRITORY_NUMBER_PATTERN,
    GenerateImageRequest,
    GenerateImageWithCropRequest,
    ImageRead,
    ImagesResponse,
    SaveTerritoryDataRequest,
    TerritoriesResponse,
    TerritoryDataRead,
    TerritoryDataResponse,
    UpdateTerritoryCompleteRequest,
)
from territory_api.services.territories import InvalidImageData, TerritoryService
from territory_api.services.territory_image import ImageGenerationError
from territory_api.utils.network import UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Territories"])


# PUBLIC_INTERFACE
def get_territory_service(session: AsyncSession = Depends(get_async_session)) -> TerritoryService:
    """Territory service bound to the request session; overridable in tests."""
    return TerritoryService(session)


def _generation_failed(exc: Exception) -> HTTPException:
    if isinstance(exc, UpstreamError):
        logger.error("Map service unavailable: %s", exc)
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="api.error.territory.imageGeneration")
    logger.exception("Image generation failed")
    return HTTPException(status_code=500, detail="api.error.territory.imageGeneration")


# PUBLIC_INTERFACE
@router.post(
    "/generate-image",
    response_model=SuccessResponse,
    summary="Generate territory image",
    description=(
        "Render the standard image (with its original copy and WebP miniature) or the large "
        "image (with its original copy) of a territory from the IGN map service."
    ),
)
async def generate_image(
    payload: GenerateImageRequest,
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> SuccessResponse:
    options = payload.options.model_dump(by_alias=True, exclude_none=True) if payload.options else None
    try:
        await service.generate_image(user.id, payload.territory.as_dict(), payload.image_type, options)
    except (UpstreamError, ImageGenerationError) as exc:
        raise _generation_failed(exc)
    return SuccessResponse()


# PUBLIC_INTERFACE
@router.post(
    "/generate-image-with-crop",
    response_model=SuccessResponse,
    summary="Generate cropped large image",
    description="Render the large image framed on a bounding box chosen in the editor.",
)
async def generate_image_with_crop(
    payload: GenerateImageWithCropRequest,
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> SuccessResponse:
    options = payload.options.model_dump(by_alias=True, exclude_none=True) if payload.options else None
    crop = payload.crop_data.model_dump(by_alias=True) if payload.crop_data else None
    try:
        await service.generate_image_with_crop(
            user.id, payload.territory.as_dict(), list(payload.custom_bbox), crop, options
        )
    except (UpstreamError, ImageGenerationError) as exc:
        raise _generation_failed(exc)
    return SuccessResponse()


# PUBLIC_INTERFACE
@router.get(
    "/images",
    response_model=ImagesResponse,
    summary="List images",
    description="Image metadata of the user, newest first, optionally filtered by territory and type.",
)
async def list_images(
    territory_number: Optional[str] = Query(None, alias="territoryNumber"),
    image_type: Optional[str] = Query(None, alias="imageType"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> ImagesResponse:
    rows = await TerritoryRepository(session).get_territory_images_by_user(user.id, territory_number, image_type)
    images = []
    for row in rows:
        item = ImageRead.model_validate(row)
        item.image_url = get_image_file_path(row.user_id, row.territory_number, row.image_type)
        images.append(item)
    return ImagesResponse(images=images)


# PUBLIC_INTERFACE
@router.delete(
    "/images/{territory_number}/{image_type}",
    response_model=SuccessResponse,
    summary="Delete image",
    description="Delete one image of a territory and its file.",
)
async def delete_image(
    territory_number: str = Path(..., pattern=TERRITORY_NUMBER_PATTERN),
    image_type: str = Path(...),
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> SuccessResponse:
    if image_type not in IMAGE_TYPES:
        raise HTTPException(status_code=400, detail="api.error.territory.invalidImageType")
    await service.delete_image(user.id, territory_number, image_type)
    return SuccessResponse(message="Image supprimée avec succès")


# PUBLIC_INTERFACE
@router.post(
    "/data",
    response_model=SuccessResponse,
    summary="Save territory data",
    description="Store the GPX document holding every territory of the user.",
)
async def save_data(
    payload: SaveTerritoryDataRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    saved = await TerritoryRepository(session).save_territory_data(user.id, payload.gpx_data)
    if saved is None:
        raise HTTPException(status_code=400, detail="api.error.territory.emptyData")
    return SuccessResponse(message="Données de territoire sauvegardées")


# PUBLIC_INTERFACE
@router.get(
    "/data",
    response_model=TerritoryDataResponse,
    summary="Read territory data",
    description="Return the stored GPX document; 404 when none was saved.",
)
async def read_data(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> TerritoryDataResponse:
    data = await TerritoryRepository(session).get_territory_data(user.id)
    if data is None:
        raise HTTPException(status_code=404, detail="api.error.territory.dataNotFound")
    return TerritoryDataResponse(data=TerritoryDataRead.model_validate(data))


# PUBLIC_INTERFACE
@router.delete(
    "/data",
    response_model=SuccessResponse,
    summary="Delete territory data",
    description="Delete the GPX document and every image and layer of the user.",
)
async def delete_data(
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> SuccessResponse:
    await service.delete_all_data(user.id)
    return SuccessResponse(message="Données de territoire supprimées")


# PUBLIC_INTERFACE
@router.post(
    "/data/import-csv",
    response_model=TerritoriesResponse,
    summary="Import CSV",
    description="Convert a CSV export of territories to GPX and store it.",
)
async def import_csv(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> TerritoriesResponse:
    limit = get_app_settings().UPLOAD_MAX_BYTES
    raw = await file.read(limit + 1)
    if len(raw) > limit:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="api.error.upload.tooLarge")
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError:
        content = raw.decode("latin-1")

    territories = await service.import_csv(user.id, content)
    if not territories:
        raise HTTPException(status_code=400, detail="api.error.territory.emptyCsv")
    return TerritoriesResponse(territories=territories)


# PUBLIC_INTERFACE
@router.get(
    "/territories",
    response_model=TerritoriesResponse,
    summary="List territories",
    description="Territories rebuilt from the stored GPX with image URLs, rotation and paint layers.",
)
async def list_territories(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> TerritoriesResponse:
    base_url = get_app_settings().FRONTEND_URL.rstrip("/")
    territories = await TerritoryRepository(session).get_reconstructed_territories(user.id, base_url)
    return TerritoriesResponse(territories=territories)


# PUBLIC_INTERFACE
@router.put(
    "/territories/{territory_number}/complete",
    response_model=SuccessResponse,
    summary="Save edited territory",
    description="Save edited images (data URLs) and paint layers of a territory in one call.",
)
async def update_territory_complete(
    payload: UpdateTerritoryCompleteRequest,
    territory_number: str = Path(..., pattern=TERRITORY_NUMBER_PATTERN),
    user: User = Depends(get_current_user),
    service: TerritoryService = Depends(get_territory_service),
) -> SuccessResponse:
    if payload.territory.num != territory_number:
        raise HTTPException(status_code=400, detail="api.error.territory.numberMismatch")

    layers = {
        "paint_layers_image": [l.model_dump() for l in payload.layers.paint_layers_image or []],
        "paint_layers_large": [l.model_dump() for l in payload.layers.paint_layers_large or []],
    }
    try:
        await service.update_territory_complete(
            user.id, payload.territory.as_dict(), payload.images.model_dump(), layers
        )
    except InvalidImageData as exc:
        logger.warning("Rejected edited image for territory %s: %s", territory_number, exc)
        raise HTTPException(status_code=400, detail="api.error.territory.invalidImage")
    return SuccessResponse(message="Territoire mis à jour avec succès")
