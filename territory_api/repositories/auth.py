from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update

from territory_api.db.base import to_db_datetime, utcnow
from territory_api.db.models.users import PasswordResetToken, User
from .base import BaseRepository


class AuthRepository(BaseRepository):
    """Password reset tokens and account confirmation."""

    async def create_password_reset_token(self, email: str, token: str, expires_at: datetime) -> PasswordResetToken:
        entity = PasswordResetToken(token=token, email=email, expires_at=to_db_datetime(expires_at))
        await self.add(entity)
        await self.commit()
        return entity

    async def get_password_reset_token(self, token: str) -> Optional[PasswordResetToken]:
        stmt = select(PasswordResetToken).where(PasswordResetToken.token == token).limit(1)
        return await self.first(stmt)

    async def delete_password_reset_token(self, token: str) -> None:
        await self.delete_rows(delete(PasswordResetToken).where(PasswordResetToken.token == token))

    async def confirm_user_email(self, user_id: str) -> None:
        await self.execute(update(User).where(User.id == user_id).values(email_verified=utcnow()))
        await self.commit()

    async def update_user_password(self, user_id: str, hashed_password: str) -> None:
        await self.execute(update(User).where(User.id == user_id).values(password=hashed_password))
        await self.commit()
