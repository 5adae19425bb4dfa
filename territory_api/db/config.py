from __future__ import annotations

import re
from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    MySQL connection settings.

    DATABASE_URL wins when set (tests use `sqlite+aiosqlite://`); otherwise the
    URL is assembled from DB_HOST, DB_PORT, DB_USER, DB_PASSWORD and DB_NAME.
    """

    DATABASE_URL: Optional[str] = Field(
        default=None, description="If provided, full database connection URL."
    )
    DB_HOST: Optional[str] = Field(default="localhost", description="Database host (default localhost)")
    DB_PORT: Optional[int] = Field(default=3306, description="Database port (default 3306)")
    DB_USER: Optional[str] = Field(default=None, description="DB username")
    DB_PASSWORD: Optional[str] = Field(default=None, description="DB password")
    DB_NAME: Optional[str] = Field(default=None, description="Database name")

    SQL_ECHO: bool = Field(default=False, description="Log every SQL statement")
    DB_POOL_SIZE: int = Field(default=10, description="Connection pool size")
    DB_POOL_RECYCLE: int = Field(
        default=3600, description="Seconds after which pooled MySQL connections are recycled"
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def database_url(self) -> str:
        """Driver-neutral URL; the password is percent-encoded."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if not all([self.DB_USER, self.DB_NAME]):
            raise ValueError("Set DATABASE_URL, or DB_USER and DB_NAME, to reach the database")
        host = self.DB_HOST or "localhost"
        port = self.DB_PORT or 3306
        password = quote_plus(self.DB_PASSWORD or "")
        return f"mysql://{self.DB_USER}:{password}@{host}:{port}/{self.DB_NAME}"

    @property
    def is_mysql(self) -> bool:
        return self.database_url.startswith("mysql")

    @property
    def async_database_url(self) -> str:
        """
        MySQL URLs are normalized to the aiomysql driver required by AsyncEngine.
        Other URLs (e.g. sqlite+aiosqlite) are returned untouched.
        """
        url = self.database_url
        if url.startswith("mysql+aiomysql://"):
            return url
        return re.sub(r"^mysql(\+\w+)?://", "mysql+aiomysql://", url)

    @property
    def sync_database_url(self) -> str:
        """
        Sync URL used by Alembic, on the PyMySQL driver that aiomysql already
        depends on. `sqlite+aiosqlite` becomes plain `sqlite`.
        """
        url = self.database_url
        if url.startswith("sqlite+aiosqlite"):
            return "sqlite" + url[len("sqlite+aiosqlite"):]
        return re.sub(r"^mysql(\+\w+)?://", "mysql+pymysql://", url)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return a settings object for the database layer."""
    return Settings()
