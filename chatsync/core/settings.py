"""Application settings using Pydantic Settings for typed configuration.

This module centralizes all configuration and provides type-safe access to settings.
Settings are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env_name: str = Field(default="development", alias="ENV_NAME")

    # CORS
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    # Identity provider
    firebase_api_key: str | None = Field(default=None, alias="FIREBASE_API_KEY")
    identity_toolkit_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com",
        alias="IDENTITY_TOOLKIT_BASE_URL",
    )
    oauth_request_uri: str = Field(
        default="http://localhost", alias="OAUTH_REQUEST_URI"
    )

    # Document store
    store_backend: Literal["firestore", "memory"] = Field(
        default="firestore", alias="STORE_BACKEND"
    )

    # Upload relay
    upload_url: str = Field(
        default="https://devdrm.xyz/upload.php", alias="UPLOAD_URL"
    )
    upload_origin: str = Field(default="https://devdrm.xyz", alias="UPLOAD_ORIGIN")

    # Profile defaults
    avatar_base_url: str = Field(
        default="https://ui-avatars.com/api/", alias="AVATAR_BASE_URL"
    )

    # Subscription and session limits
    max_subscriptions: int = Field(default=256, alias="MAX_SUBSCRIPTIONS", ge=1)
    max_unread_counters: int = Field(default=50, alias="MAX_UNREAD_COUNTERS", ge=0)
    max_sessions: int = Field(default=100, alias="MAX_SESSIONS", ge=1)
    snapshot_timeout: float = Field(default=5.0, alias="SNAPSHOT_TIMEOUT", gt=0)

    @computed_field
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        origins = []
        for o in self.cors_origins.split(","):
            trimmed = o.strip()
            if trimmed:
                origins.append(trimmed)
        return origins

    @computed_field
    @property
    def is_development(self) -> bool:
        """Whether the app runs in a local development environment."""
        return self.env_name.lower() in {"dev", "development", "local"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
