from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings, get_settings

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(settings: Settings) -> Dict[str, Any]:
    """Pool options; MySQL drops idle connections, so they are recycled and pinged."""
    options: Dict[str, Any] = {"echo": settings.SQL_ECHO}
    if settings.is_mysql:
        options.update(
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    return options


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Process-wide AsyncEngine, created on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.async_database_url, **_engine_options(settings))
    return _engine


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the engine; objects stay readable after commit."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(bind=get_engine(), expire_on_commit=False, autoflush=False)
    return _session_maker


# PUBLIC_INTERFACE
@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for background work outside a request (e.g. the session sweep)."""
    async with get_session_maker()() as session:
        yield session


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with session_scope() as session:
        yield session


# PUBLIC_INTERFACE
async def dispose_engine() -> None:
    """Close pooled connections on shutdown; the next call to get_engine reconnects."""
    global _engine, _session_maker
    engine, _engine, _session_maker = _engine, None, None
    if engine is not None:
        await engine.dispose()
