from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext

from territory_api.core.settings import get_app_settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)

# 8 to 64 characters with at least one lowercase, uppercase, digit and symbol.
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^a-zA-Z0-9]).{8,64}$")

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdwy])\s*$")
_DURATION_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "y": timedelta(days=365.25),
}


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against a bcrypt hash. Missing hashes never match."""
    if not hashed_password:
        return False
    try:
        return _pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Hash is not a recognised bcrypt string
        return False


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def parse_duration(value: Union[str, int, timedelta]) -> timedelta:
    """
    Convert an expiry such as "30s", "15m", "1h", "7d" or "30y" into a timedelta.

    Integers are read as seconds.

    Raises:
        ValueError: if the string does not match the <number><unit> form.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int):
        return timedelta(seconds=value)
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit]


# PUBLIC_INTERFACE
def create_token(user_id: str, expires_in: Union[str, int, timedelta, None] = None) -> str:
    """
    Create a signed JWT carrying `{userId}`.

    A random `jti` keeps tokens issued to one user in the same second distinct,
    since sessions are looked up and deleted by token.

    Parameters:
        user_id: identifier stored in the `userId` claim
        expires_in: lifetime, defaults to JWT_DEFAULT_EXPIRES ("1h")
    """
    settings = get_app_settings()
    lifetime = parse_duration(expires_in or settings.JWT_DEFAULT_EXPIRES)
    now = datetime.now(tz=timezone.utc)
    to_encode: Dict[str, Any] = {
        "userId": user_id,
        "jti": str(uuid4()),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def verify_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Raises:
        JWTError: if the token is malformed, tampered, expired or has no userId.
    """
    settings = get_app_settings()
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if not payload.get("userId"):
        raise JWTError("Token has no userId claim")
    return payload


# PUBLIC_INTERFACE
def get_token_user_id(token: str) -> Optional[str]:
    """Return `userId` from a token or None when the token is invalid."""
    try:
        return verify_token(token)["userId"]
    except JWTError:
        return None
