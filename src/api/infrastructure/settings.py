"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. The master database URL is the one value without a
default: the process refuses to start without it.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infrastructure.database.exceptions import ConfigurationError


class DatabaseSettings(BaseSettings):
    """Master database connection and pool settings.

    Environment variables:
        DATABASE_URL: Master Postgres connection string (required)
        DB_POOL_MAX: Maximum connections per pool (default: 20)
        DB_POOL_MIN: Connections opened when a pool is warmed up (default: 2)
        DB_MAX_USES: Checkouts before a connection is recycled (default: 7500)
        DB_MAX_LIFETIME: Seconds before a connection is recycled (default: 3600)
        DB_IDLE_TIMEOUT: Seconds a pooled connection may sit idle (default: 30)
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field(
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="Master database connection string",
        min_length=1,
    )
    pool_max: int = Field(
        default=20,
        description="Maximum connections in each pool",
        ge=1,
        le=500,
    )
    pool_min: int = Field(
        default=2,
        description="Connections opened when a pool is warmed up",
        ge=0,
        le=500,
    )
    max_uses: int = Field(
        default=7500,
        description="Checkouts after which a connection is replaced",
        ge=1,
    )
    max_lifetime: int = Field(
        default=3600,
        description="Seconds after which a connection is replaced",
        ge=1,
    )
    idle_timeout: int = Field(
        default=30,
        description="Seconds a connection may sit idle in the pool",
        ge=1,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max < self.pool_min:
            raise ValueError(
                f"pool_max ({self.pool_max}) must be >= pool_min ({self.pool_min})"
            )
        return self


class AuthSettings(BaseSettings):
    """Bearer token settings.

    Environment variables:
        JWT_SECRET: HMAC secret used to verify tokens (default: dev-secret)
        JWT_ALGORITHM: Signing algorithm (default: HS256)
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: SecretStr = Field(
        default=SecretStr("dev-secret"),
        description="HMAC secret for bearer tokens",
    )
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Storefront API", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()


def load_database_settings() -> DatabaseSettings:
    """Load database settings, failing fast on a missing master URL.

    Raises:
        ConfigurationError: If DATABASE_URL is unset or pool settings are invalid.
    """
    try:
        return DatabaseSettings()  # type: ignore[call-arg]
    except ValidationError as e:
        # database_url is the only field without a default
        if any(error["type"] == "missing" for error in e.errors()):
            raise ConfigurationError(
                "DATABASE_URL must be set. Did you forget to provision a database?"
            ) from e
        raise ConfigurationError(f"Invalid database settings: {e}") from e


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return load_database_settings()


@lru_cache
def get_auth_settings() -> AuthSettings:
    """Get cached authentication settings."""
    return AuthSettings()
