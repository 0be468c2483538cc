"""
Configuration management for the content cache proxy.

Settings are read once at process start. The proxy core never touches the
environment itself; it receives a ``ProxyConfig`` built from these settings.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class ProxySettings(BaseSettings):
    """Process-wide settings for the proxy service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="PROXY_ENV")
    log_level: str = Field(default="info", validation_alias="PROXY_LOG_LEVEL")
    host: str = Field(default="0.0.0.0", validation_alias="PROXY_HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    metrics_port: Optional[int] = Field(default=None, validation_alias="PROXY_METRICS_PORT")

    # Upstream content API
    space_id: Optional[str] = Field(default=None, validation_alias="CONTENTFUL_SPACE_ID")
    access_token: Optional[str] = Field(default=None, validation_alias="CONTENTFUL_ACCESS_TOKEN")
    preview_token: Optional[str] = Field(default=None, validation_alias="CONTENTFUL_PREVIEW_TOKEN")
    preview: bool = Field(default=False, validation_alias="CONTENTFUL_PREVIEW")
    secure: bool = Field(default=True, validation_alias="CONTENTFUL_SECURE")
    upstream_timeout_seconds: float = Field(default=10.0, validation_alias="UPSTREAM_TIMEOUT_SECONDS")

    # Response cache
    cache_expiration_minutes: int = Field(default=1, ge=1, validation_alias="CACHE_EXPIRATION_IN_MINUTES")
    cache_max_entries: int = Field(default=500, ge=1, validation_alias="CACHE_MAX_ENTRIES")
    cache_sliding_expiration: bool = Field(default=False, validation_alias="CACHE_SLIDING_EXPIRATION")

    @property
    def cache_max_age_seconds(self) -> float:
        return self.cache_expiration_minutes * 60.0


def get_settings(**overrides) -> ProxySettings:
    """Load settings and fail fast when mandatory identifiers are missing."""
    settings = ProxySettings(**overrides)

    if not settings.space_id:
        raise ConfigurationError("Missing CONTENTFUL_SPACE_ID", {"variable": "CONTENTFUL_SPACE_ID"})
    if not settings.access_token:
        raise ConfigurationError("Missing CONTENTFUL_ACCESS_TOKEN", {"variable": "CONTENTFUL_ACCESS_TOKEN"})

    return settings
