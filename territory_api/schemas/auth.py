from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, EmailStr, Field, field_validator

from territory_api.core.security import PASSWORD_PATTERN
from .common import CamelModel

_USERNAME_CHARS = re.compile(r"^[a-zA-Z0-9_]+$")


def normalize_email(value: str) -> str:
    """
    Normalize an address the way `EmailStr` does at registration (lowercase
    domain). Malformed input is returned stripped so login still answers 401.
    """
    value = value.strip()
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError:
        return value


def _check_password(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError("api.error.auth.password.invalidChars")
    return value


class RegisterRequest(BaseModel):
    """Account creation payload."""
    username: str = Field(..., description="3 to 20 letters, digits or underscores")
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., description="8 to 64 chars with lower, upper, digit and symbol")

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("api.error.auth.username.tooShort")
        if len(v) > 20:
            raise ValueError("api.error.auth.username.tooLong")
        if not _USERNAME_CHARS.match(v):
            raise ValueError("api.error.auth.username.invalidChars")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


class ConfirmRequest(BaseModel):
    """E-mail confirmation token."""
    token: str = Field(...)


class LoginRequest(BaseModel):
    """Credentials; `remember` extends the session to a year."""
    email: str = Field(...)
    password: str = Field(...)
    remember: Optional[bool] = Field(default=False)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)


class ResetRequest(BaseModel):
    """Password reset request."""
    email: EmailStr = Field(...)


class ResetConfirmRequest(BaseModel):
    """New password with the token received by e-mail."""
    token: str = Field(...)
    password: str = Field(...)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("api.error.auth.password.tooShort")
        if len(v) > 64:
            raise ValueError("api.error.auth.password.tooLong")
        return _check_password(v)


class MeResponse(CamelModel):
    """Profile of the signed-in user."""
    id: str
    username: str
    email: str
    email_verified: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserSearchItem(BaseModel):
    id: str
    username: str


class UserSearchResponse(CamelModel):
    users: List[UserSearchItem] = Field(default_factory=list)
    has_more: bool = False
