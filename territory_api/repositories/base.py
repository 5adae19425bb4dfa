from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import Delete, Executable
from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """
    Shared query helpers over an AsyncSession.

    Write methods of the repositories commit by default; methods taking
    `commit=False` let a caller group several writes in one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable):
        return await self.session.execute(statement)

    async def scalars(self, statement: Executable) -> List[Any]:
        """All first-column values of `statement`."""
        return list((await self.session.scalars(statement)).all())

    async def first(self, statement: Executable) -> Optional[Any]:
        """First entity of `statement`, or None."""
        return (await self.session.scalars(statement)).first()

    async def delete_rows(self, statement: Delete, commit: bool = True) -> int:
        """Run a bulk DELETE and return how many rows it removed."""
        result = await self.session.execute(statement)
        if commit:
            await self.session.commit()
        return result.rowcount or 0

    async def add(self, entity: Any) -> None:
        self.session.add(entity)

    async def commit(self) -> None:
        await self.session.commit()
