from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select, update

from territory_api.db.base import new_id
from territory_api.db.models.users import User
from .base import BaseRepository


class UserRepository(BaseRepository):
    """Repository for user accounts."""

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        stmt = select(User).where(User.id == user_id).limit(1)
        return await self.first(stmt)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email).limit(1)
        return await self.first(stmt)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username).limit(1)
        return await self.first(stmt)

    async def search_users_by_username(self, query: str, limit: int, offset: int) -> List[User]:
        """
        Case-insensitive prefix search ordered by username.

        Returns up to `limit + 1` rows; the extra row tells the caller a next page exists.
        """
        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = (
            select(User)
            .where(func.lower(User.username).like(f"{escaped}%", escape="\\"))
            .order_by(User.username)
            .offset(offset)
            .limit(limit + 1)
        )
        return list(await self.scalars(stmt))

    async def create_user(
        self,
        *,
        username: str,
        email: str,
        password: str,
        user_id: Optional[str] = None,
    ) -> User:
        user = User(id=user_id or new_id(), username=username, email=email, password=password)
        await self.add(user)
        await self.commit()
        return user

    async def disable_user(self, user_id: str) -> None:
        stmt = update(User).where(User.id == user_id).values(disabled=True)
        await self.execute(stmt)
        await self.commit()
