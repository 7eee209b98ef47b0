"""Gateway settings loaded from the environment.

Read once at startup. Missing service URLs or the internal API key abort
startup with a validation error.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .. import __version__


class Settings(BaseSettings):
    """Immutable gateway configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    app_version: str = __version__
    environment: str = Field(default="development")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Downstream services
    auth_service_url: str
    users_service_url: str
    internal_api_key: SecretStr
    downstream_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: str = Field(default="info")
    log_format: str = Field(default="json")

    # CORS
    frontend_url: Optional[str] = None

    @field_validator("auth_service_url", "users_service_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("service URL must not be empty")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @property
    def cors_origins(self) -> List[str]:
        origins = ["null"]  # file:// pages
        if self.frontend_url:
            origins.append(self.frontend_url)
        return origins


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment (cached)."""
    return Settings()
