import io
import os
import tempfile
from typing import Dict, List

# Settings are read from the environment when the app module is imported.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("STATIC_PATH", tempfile.mkdtemp(prefix="territory-static-"))
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("SESSION_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("MAIL_NOREPLY_TOKEN", "test-token")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from fastapi import Depends
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from territory_api.api.main import app
from territory_api.api.routes.territories import get_territory_service
from territory_api.db.base import Base
from territory_api.db.session import get_async_session
from territory_api.repositories.user_config import UserConfigRepository
from territory_api.services import mail as mail_service
from territory_api.services.storage import ImageStorage
from territory_api.services.territories import TerritoryService

PASSWORD = "Secret#123"

SQUARE = [
    {"lat": 48.8600, "lon": 2.3500},
    {"lat": 48.8600, "lon": 2.3560},
    {"lat": 48.8560, "lon": 2.3560},
    {"lat": 48.8560, "lon": 2.3500},
]


def png_bytes(width: int = 64, height: int = 64, color=(200, 220, 240)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeMapService:
    """Stands in for the WMS download; records requested URLs."""

    def __init__(self) -> None:
        self.urls: List[str] = []
        self.error: Exception | None = None

    async def __call__(self, url: str, retries: int, delay_ms: int) -> bytes:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return png_bytes()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, autocommit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> ImageStorage:
    return ImageStorage(str(tmp_path / "static"))


@pytest.fixture
def map_service() -> FakeMapService:
    return FakeMapService()


@pytest.fixture
def sent_mails(monkeypatch) -> List[Dict]:
    sent: List[Dict] = []

    async def fake_send(mail_type, lang, to, data=None):
        sent.append({"type": mail_type, "lang": lang, "to": to, "data": dict(data or {})})

    monkeypatch.setattr(mail_service, "send_mail_noreply", fake_send)
    return sent


@pytest.fixture
async def client(session_maker, storage, map_service, sent_mails):
    async def override_session():
        async with session_maker() as session:
            yield session

    def override_service(session: AsyncSession = Depends(get_async_session)) -> TerritoryService:
        return TerritoryService(session, storage=storage, fetcher=map_service)

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_territory_service] = override_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


async def register(client, username="alice", email="alice@example.com", password=PASSWORD):
    response = await client.post(
        "/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
async def auth_client(client):
    """Client holding the session cookie of a freshly registered user."""
    await register(client)
    return client


@pytest.fixture
async def current_user_id(auth_client):
    response = await auth_client.get("/me")
    return response.json()["id"]


@pytest.fixture
async def small_pages(session, current_user_id):
    """Lowest print resolution so rendered test images stay small."""
    await UserConfigRepository(session).update_user_config(current_user_id, {"ppp": 100, "thumbnail_width": 100})
