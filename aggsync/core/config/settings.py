#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
cache synchronization layer. All tunables (Redis connection, lock TTLs,
polling intervals, placeholder expiry, increment policy, logging) live here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Nested views (settings.redis, settings.cache_sync, ...) for each concern
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the fast ephemeral cache.

    STAGE-0.1: Redis connection configuration
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSyncSettings(BaseSettings):
    """
    Coordination tunables for population locks and derived aggregates.

    STAGE-0.2: Cache synchronization configuration

    The lock TTL must cover the worst-case population latency (an
    authoritative aggregation query plus one atomic hash write) while
    staying short enough to bound recovery after a crashed holder.
    The max wait defaults slightly above the lock TTL so that a waiter
    blocked behind a crashed holder can still take over once the TTL
    expires instead of failing.
    """

    CACHE_LOCK_TTL_SECONDS: float = Field(default=40.0, description="Population lock TTL")
    CACHE_LOCK_POLL_INTERVAL_SECONDS: float = Field(
        default=0.2, description="Fixed backoff between lock attempts"
    )
    CACHE_LOCK_MAX_WAIT_SECONDS: float = Field(
        default=45.0, description="Upper bound on total time spent waiting for a lock"
    )
    CACHE_PLACEHOLDER_FIELD: str = Field(
        default="_placeholder", description="Sentinel field marking computed-and-empty hashes"
    )
    CACHE_PLACEHOLDER_TTL_SECONDS: float = Field(
        default=300.0, description="Expiry of a placeholder-only hash"
    )
    CACHE_SCALAR_TTL_SECONDS: float | None = Field(
        default=None, description="Expiry of compute-and-cache values (None = no expiry)"
    )
    CACHE_INCREMENT_POLICY: Literal["blocking", "non_blocking"] = Field(
        default="blocking", description="Default counter increment policy"
    )

    @field_validator(
        "CACHE_LOCK_TTL_SECONDS",
        "CACHE_LOCK_POLL_INTERVAL_SECONDS",
        "CACHE_LOCK_MAX_WAIT_SECONDS",
        "CACHE_PLACEHOLDER_TTL_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v):
        """Durations must be strictly positive."""
        if v <= 0:
            raise ValueError("duration must be greater than zero")
        return v

    @field_validator("CACHE_SCALAR_TTL_SECONDS")
    @classmethod
    def validate_optional_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("CACHE_SCALAR_TTL_SECONDS must be positive or unset")
        return v

    @model_validator(mode="after")
    def validate_poll_window(self):
        """A poll interval longer than the whole wait budget would never retry."""
        if self.CACHE_LOCK_POLL_INTERVAL_SECONDS >= self.CACHE_LOCK_MAX_WAIT_SECONDS:
            raise ValueError(
                "CACHE_LOCK_POLL_INTERVAL_SECONDS must be smaller than CACHE_LOCK_MAX_WAIT_SECONDS"
            )
        return self

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Aggregate Cache Sync", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    METRICS_ENABLED: bool = Field(default=True, description="Record Prometheus metrics")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from aggsync.core.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        lock_ttl = settings.cache_sync.CACHE_LOCK_TTL_SECONDS
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum total connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Cache synchronization settings
    CACHE_LOCK_TTL_SECONDS: float = Field(default=40.0, description="Population lock TTL")
    CACHE_LOCK_POLL_INTERVAL_SECONDS: float = Field(default=0.2, description="Lock poll backoff")
    CACHE_LOCK_MAX_WAIT_SECONDS: float = Field(default=45.0, description="Lock wait budget")
    CACHE_PLACEHOLDER_FIELD: str = Field(default="_placeholder", description="Empty-hash sentinel")
    CACHE_PLACEHOLDER_TTL_SECONDS: float = Field(default=300.0, description="Placeholder expiry")
    CACHE_SCALAR_TTL_SECONDS: float | None = Field(default=None, description="Scalar value expiry")
    CACHE_INCREMENT_POLICY: Literal["blocking", "non_blocking"] = Field(
        default="blocking", description="Default counter increment policy"
    )

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Aggregate Cache Sync", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    METRICS_ENABLED: bool = Field(default=True, description="Record Prometheus metrics")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_cache_sync(self):
        """Fail at load time, not on first lock wait."""
        self.cache_sync
        return self

    # Nested configuration views
    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
        )

    @property
    def cache_sync(self) -> CacheSyncSettings:
        """Get cache synchronization settings (validated on construction)."""
        return CacheSyncSettings(
            CACHE_LOCK_TTL_SECONDS=self.CACHE_LOCK_TTL_SECONDS,
            CACHE_LOCK_POLL_INTERVAL_SECONDS=self.CACHE_LOCK_POLL_INTERVAL_SECONDS,
            CACHE_LOCK_MAX_WAIT_SECONDS=self.CACHE_LOCK_MAX_WAIT_SECONDS,
            CACHE_PLACEHOLDER_FIELD=self.CACHE_PLACEHOLDER_FIELD,
            CACHE_PLACEHOLDER_TTL_SECONDS=self.CACHE_PLACEHOLDER_TTL_SECONDS,
            CACHE_SCALAR_TTL_SECONDS=self.CACHE_SCALAR_TTL_SECONDS,
            CACHE_INCREMENT_POLICY=self.CACHE_INCREMENT_POLICY,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            METRICS_ENABLED=self.METRICS_ENABLED,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
