"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import normalize_base_url


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CatalogSync", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_addon_url: str | None = Field(
        default=None,
        alias="CATALOG_ADDON_URL",
        validation_alias=AliasChoices("CATALOG_ADDON_URL", "AIOSTREAMS_URL"),
    )
    catalog_auth_header: str | None = Field(
        default=None, alias="CATALOG_AUTH_HEADER"
    )
    catalog_max_items: int = Field(
        default=500, alias="CATALOG_MAX_ITEMS", ge=1, le=10_000
    )
    catalog_timeout_seconds: float = Field(
        default=300.0, alias="CATALOG_TIMEOUT", gt=0
    )

    sync_enabled: bool = Field(default=True, alias="SYNC_ENABLED")
    sync_interval_seconds: int = Field(
        default=43_200, alias="SYNC_INTERVAL", ge=60
    )
    interactive_item_delay: float = Field(
        default=0.5, alias="INTERACTIVE_ITEM_DELAY", ge=0
    )
    sweep_item_delay: float = Field(default=2.0, alias="SWEEP_ITEM_DELAY", ge=0)
    meta_cache_seconds: int = Field(default=3_600, alias="META_CACHE_TTL", ge=0)
    job_retention_seconds: int = Field(
        default=300, alias="JOB_RETENTION", ge=0
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0, alias="SHUTDOWN_TIMEOUT", ge=0
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./catalogsync.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("catalog_addon_url", mode="before")
    @classmethod
    def _normalise_addon_url(cls, value: object) -> str | None:
        """Accept either the addon manifest URL or its base URL."""

        if value is None:
            return None
        return normalize_base_url(str(value))

    @field_validator("catalog_auth_header", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
