from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Deterministic constraint names so Alembic autogenerate diffs stay stable on MySQL.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

ID_LENGTH = 36


# PUBLIC_INTERFACE
def new_id() -> str:
    """Generate a primary key value for string-keyed tables."""
    return str(uuid.uuid4())


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form DATETIME columns store."""
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


# PUBLIC_INTERFACE
def to_db_datetime(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base shared by every table of the territory schema."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class StringPkMixin:
    """Mixin that provides a string primary key generated client-side."""
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=new_id)


class TimestampMixin:
    """Mixin that provides createdAt and updatedAt timestamp columns."""
    created_at: Mapped[Optional[datetime]] = mapped_column(
        "createdAt", DateTime, default=utcnow, server_default=func.now(), nullable=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        "updatedAt", DateTime, default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=True
    )
