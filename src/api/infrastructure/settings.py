"""Application settings using pydantic-settings.

Settings are loaded from environment variables (and an optional ``.env``
file). The database connection string has no default: a process without
``DATABASE_URL`` must not serve traffic.
"""

from functools import lru_cache
from importlib import metadata

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infrastructure.database.exceptions import DatabaseConfigurationError

PRODUCTION = "production"
DISTRIBUTION = "signet-api"
UNRELEASED_VERSION = "0.0.0.dev0"


def installed_version() -> str:
    """Version of the installed distribution, or a dev marker from a bare checkout."""
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return UNRELEASED_VERSION


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        DATABASE_URL: Postgres connection string (required)
        SIGNET_DB_IDLE_TIMEOUT_SECONDS: Recycle connections older than this (default: 30)
        SIGNET_DB_CONNECT_TIMEOUT_SECONDS: Connect/checkout timeout (default: 15)
        SIGNET_DB_KEEPALIVE_IDLE_SECONDS: Server-side TCP keep-alive idle (default: 10)
        SIGNET_DB_CONNECT_MAX_ATTEMPTS: Initialization attempts (default: 3)
        SIGNET_DB_RETRY_DELAY_SECONDS: Linear backoff base (default: 1.0)
        SIGNET_DB_ECHO: Log emitted SQL (default: false)
    """

    model_config = SettingsConfigDict(
        env_prefix="SIGNET_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    url: SecretStr = Field(
        validation_alias="DATABASE_URL",
        description="Postgres connection string",
    )
    idle_timeout_seconds: int = Field(
        default=30,
        description="Connections older than this are recycled on checkout",
        ge=1,
    )
    connect_timeout_seconds: int = Field(
        default=15,
        description="Timeout for establishing or checking out a connection",
        ge=1,
    )
    keepalive_idle_seconds: int | None = Field(
        default=10,
        description="Server-side TCP keep-alive idle interval (None disables)",
        ge=1,
    )
    connect_max_attempts: int = Field(
        default=3,
        description="Attempts made by a single initialization",
        ge=1,
        le=10,
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        description="Backoff base; attempt N waits N times this value",
        ge=0,
    )
    echo: bool = Field(default=False, description="Log emitted SQL statements")

    @field_validator("url")
    @classmethod
    def validate_url_not_blank(cls, value: SecretStr) -> SecretStr:
        """Reject an empty connection string."""
        if not value.get_secret_value().strip():
            raise ValueError("DATABASE_URL must not be empty")
        return value


class AppSettings(BaseSettings):
    """HTTP application settings.

    Environment variables:
        SIGNET_ENVIRONMENT: "production" enables auto-heal and strict CORS
        SIGNET_LOG_LEVEL: Minimum log level (default: info)
        SIGNET_VERSION: Overrides the installed package version
        VERCEL_URL / FRONTEND_URL: Extra CORS origins in production
    """

    model_config = SettingsConfigDict(
        env_prefix="SIGNET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Signet API", description="Application name")
    version: str = Field(
        default_factory=installed_version,
        description="Reported in logs and the OpenAPI document",
    )
    environment: str = Field(default="development", description="Deployment mode")
    log_level: str = Field(default="info", description="Minimum log level")
    vercel_url: str | None = Field(
        default=None,
        validation_alias="VERCEL_URL",
        description="Deployment host assigned by Vercel",
    )
    frontend_url: str | None = Field(
        default=None,
        validation_alias="FRONTEND_URL",
        description="Public origin of the frontend",
    )
    max_body_bytes: int = Field(
        default=100 * 1024 * 1024,
        description="Largest accepted request body",
        ge=1,
    )
    request_timeout_seconds: float = Field(default=120, gt=0)
    upload_timeout_seconds: float = Field(
        default=300,
        description="Timeout for upload and document routes",
        gt=0,
    )
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=1, le=65535)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == PRODUCTION


@lru_cache
def get_settings() -> AppSettings:
    """Get cached application settings."""
    return AppSettings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Raises:
        DatabaseConfigurationError: If DATABASE_URL is missing or invalid.
    """
    try:
        return DatabaseSettings()
    except ValidationError as e:
        raise DatabaseConfigurationError(
            "DATABASE_URL must be set. Did you forget to provision a database? "
            "On Vercel, add it to the project's Environment Variables."
        ) from e
