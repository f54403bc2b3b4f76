"""
Runtime configuration helpers for the chatsync backend and client.

Loads DATABASE_URL and the other variables from the .env file located in the
project root without overriding values provided by the environment.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    # Required: must come from .env or the environment
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="chatsync", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    cors_origins: str | None = Field(default=None, alias="CORS_ORIGINS")

    # Auth
    jwt_secret_key: str | None = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expires_minutes: int = Field(default=1440, alias="JWT_EXPIRES_MINUTES")

    # Group management
    group_history_limit: int = Field(default=50, alias="GROUP_HISTORY_LIMIT")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


class ClientSettings(BaseSettings):
    """Settings for the client synchronization layer; no database access needed."""

    api_url: str = Field(default="http://localhost:8000", alias="CHATSYNC_API_URL")
    ws_url: str = Field(default="ws://localhost:8000/realtime/ws", alias="CHATSYNC_WS_URL")
    request_timeout: float = Field(default=15.0, alias="CHATSYNC_REQUEST_TIMEOUT")
    refetch_debounce_seconds: float = Field(default=0.15, alias="REFETCH_DEBOUNCE_SECONDS")
    conversations_stale_seconds: float = Field(default=30.0, alias="CONVERSATIONS_STALE_SECONDS")
    unread_poll_seconds: float = Field(default=30.0, alias="UNREAD_POLL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def get_client_settings() -> ClientSettings:
    return ClientSettings()


__all__ = ["ClientSettings", "Settings", "get_client_settings", "get_settings"]
