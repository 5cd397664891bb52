"""Application configuration loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite:///./movies.db", alias="DATABASE_URL")
    auth_token: str | None = Field(default=None, alias="AUTH_TOKEN")
    boxoffice_url: str | None = Field(default=None, alias="BOXOFFICE_URL")
    boxoffice_api_key: str | None = Field(default=None, alias="BOXOFFICE_API_KEY")
    boxoffice_timeout: float = Field(default=2.0, alias="BOXOFFICE_TIMEOUT")
    boxoffice_max_retries: int = Field(default=2, alias="BOXOFFICE_MAX_RETRIES")
    boxoffice_backoff_min: float = Field(default=0.1, alias="BOXOFFICE_BACKOFF_MIN")
    boxoffice_backoff_max: float = Field(default=0.5, alias="BOXOFFICE_BACKOFF_MAX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
