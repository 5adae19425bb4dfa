"""
Session cookie helpers.

Cookies are always scoped to `/`, httpOnly and SameSite=Lax. The `Secure`
flag follows the SECURE_COOKIES setting so local HTTP development works.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import Response

from territory_api.core.settings import get_app_settings

SECONDS_PER_DAY = 60 * 60 * 24


# PUBLIC_INTERFACE
def expires_at_time(days: int) -> datetime:
    """Return the UTC instant `days` days from now."""
    return datetime.now(tz=timezone.utc) + timedelta(days=days)


# PUBLIC_INTERFACE
def set_session_cookie(response: Response, name: str, token: str, days: int) -> None:
    """Attach a session cookie living `days` days to the response."""
    settings = get_app_settings()
    response.set_cookie(
        key=name,
        value=token,
        max_age=SECONDS_PER_DAY * days,
        path="/",
        httponly=True,
        secure=settings.SECURE_COOKIES,
        samesite="lax",
    )


# PUBLIC_INTERFACE
def clear_session_cookie(response: Response, name: str) -> None:
    """Expire the named cookie using the same attributes it was set with."""
    settings = get_app_settings()
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        secure=settings.SECURE_COOKIES,
        samesite="lax",
    )
