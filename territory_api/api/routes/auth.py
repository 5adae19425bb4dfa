from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict

import aiosmtplib
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from territory_api.core.cookies import clear_session_cookie, expires_at_time, set_session_cookie
from territory_api.core.deps import get_session_token
from territory_api.core.security import create_token, get_password_hash, verify_password, verify_token
from territory_api.core.settings import get_app_settings
from territory_api.db.base import utcnow
from territory_api.db.session import get_async_session
from territory_api.repositories.auth import AuthRepository
from territory_api.repositories.sessions import SessionRepository
from territory_api.repositories.users import UserRepository
from territory_api.schemas.auth import (
    ConfirmRequest,
    LoginRequest,
    RegisterRequest,
    ResetConfirmRequest,
    ResetRequest,
)
from territory_api.schemas.common import OkResponse
from territory_api.services import mail as mail_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

SESSION_DAYS = 7
REMEMBER_DAYS = 365
CONFIRMATION_TOKEN_LIFETIME = "30y"
RESET_TOKEN_LIFETIME = timedelta(hours=1)


def request_lang(request: Request) -> str:
    """Two-letter language from Accept-Language, "gb" when absent."""
    header = request.headers.get("accept-language") or ""
    return header[:2] or "gb"


async def _send_mail(mail_type: str, lang: str, to: str, data: Dict[str, str]) -> None:
    try:
        await mail_service.send_mail_noreply(mail_type, lang, to, data)
    except (
        mail_service.MailConfigurationError,
        mail_service.MailTemplateNotFound,
        aiosmtplib.SMTPException,
        OSError,
    ):
        logger.exception("Error sending %s email", mail_type)
        raise HTTPException(status_code=500, detail="api.error.auth.email.send")


async def _open_session(session: AsyncSession, response: Response, user_id: str, days: int) -> None:
    token = create_token(user_id, f"{days}d")
    await SessionRepository(session).create_session(token, user_id, expires_at_time(days))
    set_session_cookie(response, get_app_settings().SESSION_COOKIE_NAME, token, days)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=OkResponse,
    summary="Register",
    description=(
        "Create an account, mail a confirmation link and open a 7-day session. "
        "Returns 409 when the username or e-mail is taken."
    ),
)
async def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """Register a new user and sign them in."""
    users = UserRepository(session)
    if await users.get_user_by_username(payload.username) or await users.get_user_by_email(payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="api.error.auth.alreadyExists")

    user = await users.create_user(
        username=payload.username,
        email=payload.email,
        password=get_password_hash(payload.password),
    )
    logger.info("Registered user %s", user.id)

    token = create_token(user.id, CONFIRMATION_TOKEN_LIFETIME)
    link = f"{get_app_settings().FRONTEND_URL}/auth/confirm?token={token}"
    await _send_mail("confirmation", request_lang(request), user.email, {"name": user.username, "link": link})

    await _open_session(session, response, user.id, SESSION_DAYS)
    return OkResponse()


# PUBLIC_INTERFACE
@router.post(
    "/confirm",
    response_model=OkResponse,
    summary="Confirm e-mail",
    description="Mark the e-mail of the token's user as verified.",
)
async def confirm(
    payload: ConfirmRequest,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """Confirm an e-mail address from the mailed token."""
    try:
        user_id = verify_token(payload.token)["userId"]
    except JWTError:
        raise HTTPException(status_code=400, detail="api.error.auth.invalidOrExpiredToken")

    user = await UserRepository(session).get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="api.error.auth.userNotFound")
    if user.email_verified:
        raise HTTPException(status_code=405, detail="api.error.auth.alreadyVerified")

    await AuthRepository(session).confirm_user_email(user_id)
    return OkResponse()


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=OkResponse,
    summary="Login",
    description="Check credentials and set the session cookie, for a year when `remember` is set, else 7 days.",
)
async def login(
    payload: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """Authenticate the user and open a session."""
    user = await UserRepository(session).get_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="api.error.auth.invalidCredentials")
    if user.disabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="api.error.auth.disabled")

    days = REMEMBER_DAYS if payload.remember else SESSION_DAYS
    await _open_session(session, response, user.id, days)
    return OkResponse()


# PUBLIC_INTERFACE
@router.get(
    "/logout",
    response_model=OkResponse,
    summary="Logout",
    description="Delete the server-side session and clear the cookie.",
)
async def logout(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """End the current session."""
    token = get_session_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="api.error.auth.unauthorized")

    await SessionRepository(session).delete_session(token)
    clear_session_cookie(response, get_app_settings().SESSION_COOKIE_NAME)
    return OkResponse()


# PUBLIC_INTERFACE
@router.post(
    "/reset",
    response_model=OkResponse,
    summary="Request password reset",
    description="Mail a one-hour reset link. Unknown addresses get the same answer.",
)
async def request_reset(
    payload: ResetRequest,
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """Start a password reset."""
    user = await UserRepository(session).get_user_by_email(payload.email)
    if user is None:
        return OkResponse()

    token = create_token(user.id, RESET_TOKEN_LIFETIME)
    await AuthRepository(session).create_password_reset_token(
        payload.email, token, utcnow() + RESET_TOKEN_LIFETIME
    )

    link = f"{get_app_settings().FRONTEND_URL}/auth/reset?token={token}"
    await _send_mail("reset", request_lang(request), payload.email, {"name": user.username, "link": link})
    return OkResponse()


# PUBLIC_INTERFACE
@router.post(
    "/reset/confirm",
    response_model=OkResponse,
    summary="Confirm password reset",
    description="Set a new password from a reset token; every session of the user is revoked.",
)
async def confirm_reset(
    payload: ResetConfirmRequest,
    session: AsyncSession = Depends(get_async_session),
) -> OkResponse:
    """Complete a password reset."""
    auth = AuthRepository(session)
    entry = await auth.get_password_reset_token(payload.token)
    if entry is None or entry.expires_at < utcnow():
        raise HTTPException(status_code=400, detail="api.error.auth.invalidOrExpiredToken")

    user = await UserRepository(session).get_user_by_email(entry.email)
    if user is None:
        raise HTTPException(status_code=400, detail="api.error.auth.invalidOrExpiredToken")

    await auth.update_user_password(user.id, get_password_hash(payload.password))
    await auth.delete_password_reset_token(payload.token)
    revoked = await SessionRepository(session).delete_all_user_sessions(user.id)
    logger.info("Password reset for user %s, %d sessions revoked", user.id, revoked)
    return OkResponse()
