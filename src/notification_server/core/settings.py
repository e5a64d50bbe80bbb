"""Application settings and configuration.

This module defines all configuration options for the notification server.
Settings are loaded from environment variables with sensible defaults for
development; production deployments must provide the secrets explicitly.
"""

from __future__ import annotations

import secrets
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEVELOPMENT_JWT_SECRET = "your-secret-key-for-development"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or a `.env` file.
    Validation runs at construction time so a misconfigured production
    process fails before it starts serving.
    """

    # Application metadata
    app_name: str = Field(default="Notification Server", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    port: int = Field(default=3000, alias="PORT")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")

    # JWT authentication settings
    jwt_secret: str = Field(default=DEVELOPMENT_JWT_SECRET, alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./notifications.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # Shared broadcast bus; unset means single-instance mode
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    instance_id: str = Field(
        default_factory=lambda: secrets.token_hex(8),
        alias="INSTANCE_ID",
    )

    # Rate limiting
    http_rate_limit_window: int = Field(default=15, alias="HTTP_RATE_LIMIT_WINDOW")  # minutes
    http_rate_limit_max: int = Field(default=100, alias="HTTP_RATE_LIMIT_MAX")
    socket_rate_limit_duration: int = Field(
        default=60, alias="SOCKET_RATE_LIMIT_DURATION"
    )  # seconds
    socket_rate_limit_points: int = Field(default=10, alias="SOCKET_RATE_LIMIT_POINTS")

    # CORS configuration for web frontend access
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:8080"],
        alias="ALLOWED_ORIGINS",
    )

    # Static credential for server-to-server webhook calls
    webhook_api_key: str | None = Field(default=None, alias="WEBHOOK_API_KEY")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def _check_production_secrets(self) -> "Settings":
        if not self.is_production:
            return self
        if not self.jwt_secret or self.jwt_secret == DEVELOPMENT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production environment")
        if not self.webhook_api_key:
            raise ValueError("WEBHOOK_API_KEY must be set in production environment")
        return self

    @property
    def is_production(self) -> bool:
        """Return True when running with production safeguards."""
        return self.environment.lower() == "production"

    @property
    def effective_log_level(self) -> str:
        """Return the configured log level, defaulting by environment."""
        if self.log_level:
            return self.log_level.upper()
        return "INFO" if self.is_production else "DEBUG"

    @property
    def http_rate_limit_window_seconds(self) -> float:
        """Return the HTTP rate limit window in seconds."""
        return float(self.http_rate_limit_window * 60)

    @property
    def bus_enabled(self) -> bool:
        """Return True when a shared broadcast bus is configured."""
        return bool(self.redis_url)


settings = Settings()
