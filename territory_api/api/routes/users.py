from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.deps import get_current_user
from territory_api.db.models.users import User
from territory_api.db.session import get_async_session
from territory_api.repositories.users import UserRepository
from territory_api.schemas.auth import MeResponse, UserSearchItem, UserSearchResponse

router = APIRouter(tags=["Users"])


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=MeResponse,
    summary="Read current user",
    description="Return the profile of the signed-in user.",
)
async def read_current_user(user: User = Depends(get_current_user)) -> MeResponse:
    """Return current user profile."""
    return MeResponse.model_validate(user)


# PUBLIC_INTERFACE
@router.get(
    "/users/search",
    response_model=UserSearchResponse,
    summary="Search users",
    description="Prefix search on usernames, paginated with `limit` and `offset`.",
)
async def search_users(
    q: str = Query(..., min_length=1, max_length=20),
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
) -> UserSearchResponse:
    rows = await UserRepository(session).search_users_by_username(q, limit=limit, offset=offset)
    return UserSearchResponse(
        users=[UserSearchItem(id=u.id, username=u.username) for u in rows[:limit]],
        has_more=len(rows) > limit,
    )
