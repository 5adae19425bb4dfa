from __future__ import annotations

import json
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Settings of the territory API read from the environment and `.env`.

    Database settings live in territory_api.db.config.Settings.
    """

    # OpenAPI metadata
    APP_NAME: str = Field(default="Territory Generator API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for the Territory Generator. Provides accounts, cookie sessions, "
            "transactional mail, and storage and generation of territory maps."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")
    API_PREFIX: str = Field(
        default="",
        description="Prefix for every REST route. Empty when a reverse proxy strips /api.",
    )
    API_PORT: int = Field(default=3000)

    # Frontend, used for CORS and links in mails
    FRONTEND_URL: str = Field(default="http://localhost:5173")

    # CORS
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list or JSON array of extra allowed origins. FRONTEND_URL is always allowed.",
    )

    # Security
    JWT_SECRET: str = Field(default="change-me")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_DEFAULT_EXPIRES: str = Field(default="1h")
    SECURE_COOKIES: bool = Field(default=False)
    SESSION_COOKIE_NAME: str = Field(default="sessionToken")
    SESSION_SWEEP_INTERVAL_SECONDS: int = Field(
        default=3600,
        description="Interval between expired session sweeps. 0 disables the background sweep.",
    )

    # Static files (generated territory images)
    STATIC_PATH: str = Field(default="public")
    UPLOAD_MAX_BYTES: int = Field(default=2 * 1024 * 1024)

    # Mail
    MAIL_HOST: str = Field(default="localhost")
    MAIL_PORT: int = Field(default=587)
    MAIL_NOREPLY_ADDRESS: str = Field(default="no-reply@djahmo.fr")
    MAIL_NOREPLY_TOKEN: Optional[str] = Field(default=None)
    MAIL_SENDER_NAME: str = Field(default="Djahmo")
    MAIL_NOREPLY_LABEL: str = Field(default="Notifications")

    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="Upgrade the schema to the latest Alembic revision when the app starts.",
    )

    LOG_LEVEL: str = Field(default="INFO")

    ENVIRONMENT: Optional[str] = Field(default=None, description="development, staging or production")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def extra_origins(self) -> List[str]:
        """CORS_ORIGINS given as a JSON array or a comma-separated list."""
        raw = self.CORS_ORIGINS.strip()
        if raw.startswith("["):
            return [str(o).strip() for o in json.loads(raw) if str(o).strip()]
        return [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def allowed_origins(self) -> List[str]:
        """FRONTEND_URL, its websocket twin, then any extra configured origins."""
        origins = [self.FRONTEND_URL, self.FRONTEND_URL.replace("http", "ws", 1)]
        for origin in self.extra_origins:
            if origin not in origins:
                origins.append(origin)
        return origins


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """Fresh AppSettings read from the current environment."""
    return AppSettings()
