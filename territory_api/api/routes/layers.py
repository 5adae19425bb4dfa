from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.deps import get_current_user
from territory_api.db.models.users import User
from territory_api.db.session import get_async_session
from territory_api.repositories.territories import TerritoryRepository
from territory_api.schemas.common import SuccessResponse
from territory_api.schemas.territories import (
    TERRITORY_NUMBER_PATTERN,
    LayerCreate,
    LayerRead,
    LayerResponse,
    LayersResponse,
    LayerUpdate,
)

router = APIRouter(prefix="/territories", tags=["Layers"])


# PUBLIC_INTERFACE
@router.get(
    "/{territory_number}/layers",
    response_model=LayersResponse,
    summary="List layers",
    description="Paint layers of a territory, optionally limited to one image type.",
)
async def list_layers(
    territory_number: str = Path(..., pattern=TERRITORY_NUMBER_PATTERN),
    image_type: Optional[str] = Query(None, alias="imageType"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> LayersResponse:
    layers = await TerritoryRepository(session).get_territory_layers_by_user(user.id, territory_number, image_type)
    return LayersResponse(data=[LayerRead.model_validate(l) for l in layers])


# PUBLIC_INTERFACE
@router.post(
    "/{territory_number}/layers",
    response_model=LayerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create layer",
    description="Add one paint layer to a territory image.",
)
async def create_layer(
    payload: LayerCreate,
    territory_number: str = Path(..., pattern=TERRITORY_NUMBER_PATTERN),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> LayerResponse:
    layer = await TerritoryRepository(session).create_territory_layer(
        user_id=user.id,
        territory_number=territory_number,
        image_type=payload.image_type,
        layer_type=payload.layer_type,
        layer_data=payload.layer_data,
        style=payload.style,
        visible=True if payload.visible is None else payload.visible,
        locked=bool(payload.locked),
        name=payload.name,
    )
    return LayerResponse(data=LayerRead.model_validate(layer))


# PUBLIC_INTERFACE
@router.delete(
    "/{territory_number}/layers",
    response_model=SuccessResponse,
    summary="Delete territory layers",
    description="Delete every layer of a territory, optionally only those of one image type.",
)
async def delete_territory_layers(
    territory_number: str = Path(..., pattern=TERRITORY_NUMBER_PATTERN),
    image_type: Optional[str] = Query(None, alias="imageType"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    count = await TerritoryRepository(session).delete_territory_layers_by_territory(
        user.id, territory_number, image_type
    )
    return SuccessResponse(message=f"{count} layers supprimés avec succès")


# PUBLIC_INTERFACE
@router.get(
    "/layers/{layer_id}",
    response_model=LayerResponse,
    summary="Read layer",
)
async def read_layer(
    layer_id: str = Path(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> LayerResponse:
    layer = await TerritoryRepository(session).get_territory_layer(user.id, layer_id)
    if layer is None:
        raise HTTPException(status_code=404, detail="api.error.layer.notFound")
    return LayerResponse(data=LayerRead.model_validate(layer))


# PUBLIC_INTERFACE
@router.patch(
    "/layers/{layer_id}",
    response_model=SuccessResponse,
    summary="Update layer",
    description="Change visibility, lock, name, style or data of a layer.",
)
async def update_layer(
    payload: LayerUpdate,
    layer_id: str = Path(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    found = await TerritoryRepository(session).update_territory_layer(user.id, layer_id, payload.to_updates())
    if not found:
        raise HTTPException(status_code=404, detail="api.error.layer.notFound")
    return SuccessResponse(message="Layer mis à jour avec succès")


# PUBLIC_INTERFACE
@router.delete(
    "/layers/{layer_id}",
    response_model=SuccessResponse,
    summary="Delete layer",
)
async def delete_layer(
    layer_id: str = Path(...),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> SuccessResponse:
    if not await TerritoryRepository(session).delete_territory_layer(user.id, layer_id):
        raise HTTPException(status_code=404, detail="api.error.layer.notFound")
    return SuccessResponse(message="Layer supprimé avec succès")
