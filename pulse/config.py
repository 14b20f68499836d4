"""
Server settings for the Pulse backend.

Values come from the process environment first and the project's .env
file second.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = PROJECT_ROOT / ".env"

# Platform-provided variables win over the .env file
load_dotenv(dotenv_path=ENV_FILE, override=False)


class Settings(BaseSettings):
    # No default: the server refuses to start without a database
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="Pulse", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    # Comma separated; empty means any origin
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")

    # Sent back with every 401 so clients know where to sign in
    login_path: str = Field(default="/auth/login", alias="LOGIN_PATH")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expires_minutes: int = Field(default=1440, alias="JWT_EXPIRES_MINUTES", gt=0)

    feed_limit: int = Field(default=50, alias="FEED_LIMIT", ge=1)
    notification_limit: int = Field(default=50, alias="NOTIFICATION_LIMIT", ge=1)
    search_limit: int = Field(default=20, alias="SEARCH_LIMIT", ge=1)

    model_config = SettingsConfigDict(env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore")

    def allowed_origins(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        return origins or ["*"]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
