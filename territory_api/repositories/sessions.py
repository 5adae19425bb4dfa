from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select

from territory_api.db.base import new_id, to_db_datetime, utcnow
from territory_api.db.models.users import Session
from .base import BaseRepository


class SessionRepository(BaseRepository):
    """Server-side records of session cookies."""

    async def get_session_by_id(self, session_id: str) -> Optional[Session]:
        stmt = select(Session).where(Session.id == session_id).limit(1)
        return await self.first(stmt)

    async def get_session_by_token(self, token: str) -> Optional[Session]:
        """Return the session carrying `token` if it has not expired yet."""
        stmt = (
            select(Session)
            .where(Session.token == token, Session.expires_at > utcnow())
            .limit(1)
        )
        return await self.first(stmt)

    async def create_session(
        self,
        token: str,
        user_id: str,
        expires_at: datetime,
        session_id: Optional[str] = None,
    ) -> Session:
        entity = Session(
            id=session_id or new_id(),
            token=token,
            user_id=user_id,
            expires_at=to_db_datetime(expires_at),
        )
        await self.add(entity)
        await self.commit()
        return entity

    async def delete_session(self, token: str) -> None:
        await self.delete_rows(delete(Session).where(Session.token == token))

    async def delete_all_user_sessions(self, user_id: str) -> int:
        return await self.delete_rows(delete(Session).where(Session.user_id == user_id))

    async def delete_expired_sessions(self) -> int:
        """Remove sessions whose expiry is in the past; returns the number removed."""
        return await self.delete_rows(delete(Session).where(Session.expires_at < utcnow()))
