"""Client-side settings for the sync module, read from ``PULSE_*`` variables."""
from __future__ import annotations

from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import TYPING_IDLE_SECONDS


class ClientSettings(BaseSettings):
    base_url: str = Field(default="http://localhost:8000", alias="PULSE_BASE_URL")
    # Derived from base_url when unset.
    realtime_url: str | None = Field(default=None, alias="PULSE_REALTIME_URL")
    request_timeout: float = Field(default=30.0, alias="PULSE_REQUEST_TIMEOUT", gt=0)
    profile_cache_size: int = Field(default=256, alias="PULSE_PROFILE_CACHE_SIZE", ge=1)
    typing_idle_seconds: float = Field(default=TYPING_IDLE_SECONDS, alias="PULSE_TYPING_IDLE_SECONDS", gt=0)

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    def resolved_realtime_url(self, base_url: str | None = None) -> str:
        if self.realtime_url:
            return self.realtime_url
        return derive_realtime_url(base_url or self.base_url)


def derive_realtime_url(base_url: str) -> str:
    """Map an http(s) API origin onto the ws(s) change feed endpoint."""

    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, parts.netloc, f"{parts.path}/realtime", "", ""))


@lru_cache()
def get_client_settings() -> ClientSettings:
    return ClientSettings()


__all__ = ["ClientSettings", "derive_realtime_url", "get_client_settings"]
