from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.logging import user_id_var
from territory_api.core.security import verify_token
from territory_api.core.settings import get_app_settings
from territory_api.db.models.users import User
from territory_api.db.session import get_async_session
from territory_api.repositories.sessions import SessionRepository
from territory_api.repositories.users import UserRepository

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def get_session_token(request: Request) -> Optional[str]:
    """Return the raw session cookie value, if any."""
    return request.cookies.get(get_app_settings().SESSION_COOKIE_NAME)


# PUBLIC_INTERFACE
async def get_auth_user(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> Optional[User]:
    """
    Resolve the signed-in user from the session cookie.

    The token must verify, a live session row must carry it, and the user must
    exist and not be disabled. Any failure yields None.
    """
    token = get_session_token(request)
    if not token:
        return None

    try:
        payload = verify_token(token)
    except JWTError:
        logger.debug("Rejected session cookie with an invalid token")
        return None

    if await SessionRepository(session).get_session_by_token(token) is None:
        return None

    user = await UserRepository(session).get_user_by_id(payload["userId"])
    if user is None or user.disabled:
        return None

    user_id_var.set(user.id)
    return user


# PUBLIC_INTERFACE
async def get_current_user(user: Optional[User] = Depends(get_auth_user)) -> User:
    """Require a signed-in user; raises 401 `api.error.auth.unauthorized` otherwise."""
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="api.error.auth.unauthorized")
    return user
