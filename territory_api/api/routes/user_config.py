from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.deps import get_current_user
from territory_api.db.models.users import User
from territory_api.db.session import get_async_session
from territory_api.repositories.user_config import UserConfigRepository
from territory_api.schemas.user_config import UserConfigRead, UserConfigResponse, UserConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user-config", tags=["User Config"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=UserConfigResponse,
    summary="Read configuration",
    description="Image generation settings of the user, created with defaults on first read.",
)
async def read_user_config(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserConfigResponse:
    config = await UserConfigRepository(session).get_user_config(user.id)
    return UserConfigResponse(config=UserConfigRead.model_validate(config))


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=UserConfigResponse,
    summary="Update configuration",
    description="Update any subset of the settings; values outside their range are rejected with 400.",
)
async def update_user_config(
    payload: UserConfigUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserConfigResponse:
    updates = payload.to_updates()
    config = await UserConfigRepository(session).update_user_config(user.id, updates)
    logger.info("Updated configuration fields: %s", ", ".join(sorted(updates)) or "none")
    return UserConfigResponse(config=UserConfigRead.model_validate(config), message="Configuration mise à jour")


# PUBLIC_INTERFACE
@router.post(
    "/reset",
    response_model=UserConfigResponse,
    summary="Reset configuration",
    description="Restore the default settings and the full palette.",
)
async def reset_user_config(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserConfigResponse:
    config = await UserConfigRepository(session).reset_user_config(user.id)
    return UserConfigResponse(config=UserConfigRead.model_validate(config), message="Configuration réinitialisée")
