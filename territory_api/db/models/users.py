from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from territory_api.db.base import ID_LENGTH, Base, StringPkMixin, TimestampMixin, utcnow


class User(StringPkMixin, TimestampMixin, Base):
    """Application account."""
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email_verified: Mapped[Optional[datetime]] = mapped_column("emailVerified", DateTime, nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")


class Session(StringPkMixin, Base):
    """Server-side record of a session cookie."""
    __tablename__ = "sessions"

    user_id: Mapped[str] = mapped_column(
        "userId", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column("expiresAt", DateTime, nullable=False, index=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        "createdAt", DateTime, default=utcnow, server_default=func.now(), nullable=True
    )


class PasswordResetToken(Base):
    """One-shot token mailed to a user who asked for a password reset."""
    __tablename__ = "passwordResetTokens"

    token: Mapped[str] = mapped_column(String(500), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column("expiresAt", DateTime, nullable=False)
