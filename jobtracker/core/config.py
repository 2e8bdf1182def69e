"""Configuration management for JobTracker.

This module provides centralized configuration loading from environment
variables with validation and type safety.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    environment: str = Field(default="development", description="Deployment environment")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str | None = Field(
        default=None, description="Log format (json/console); derived from environment if unset"
    )
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8000, description="API bind port", ge=1, le=65535)

    # Persistent stores
    database_url: str = Field(
        default="", description="Primary store (users, jobs) PostgreSQL connection string"
    )
    chat_database_url: str = Field(
        default="", description="Chat store connection string (defaults to database_url)"
    )
    database_pool_size: int = Field(
        default=20, description="Connection pool size", ge=1, le=100
    )

    # Redis Cache
    redis_url: str | None = Field(
        default=None, description="Redis URL; unset disables caching"
    )
    redis_cache_enabled: bool = Field(default=True, description="Enable caching")
    redis_key_prefix: str = Field(
        default="jobtracker", description="Namespace prefix for every cache key"
    )
    redis_hot_message_count: int = Field(
        default=50, description="Hot window capacity per group", ge=1, le=1000
    )
    redis_cache_ttl: int = Field(
        default=86400, description="Chat entry TTL in seconds (24 hours)", ge=1
    )
    redis_job_cache_ttl: int = Field(
        default=300, description="Job query result TTL in seconds (5 minutes)", ge=1
    )
    redis_command_timeout: float = Field(
        default=5.0, description="Redis command timeout seconds", gt=0, le=60
    )
    redis_connect_timeout: float = Field(
        default=10.0, description="Redis connect timeout seconds", gt=0, le=120
    )
    redis_health_check_interval: float = Field(
        default=30.0, description="Seconds between background pings (0 disables)", ge=0
    )
    redis_max_connections: int = Field(
        default=10, description="Redis connection pool size", ge=1, le=1000
    )

    # Circuit breaker
    circuit_breaker_threshold: int = Field(
        default=5, description="Failures before opening circuit", ge=1, le=100
    )
    circuit_breaker_reset_timeout_ms: int = Field(
        default=60000, description="Milliseconds before an open circuit closes", ge=1
    )

    @model_validator(mode="after")
    def default_chat_database(self) -> "Settings":
        """Use the primary store for chat when no separate URL is given."""
        if not self.chat_database_url:
            self.chat_database_url = self.database_url
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def cache_enabled(self) -> bool:
        """Caching is on only when enabled and a Redis URL is configured."""
        return self.redis_cache_enabled and bool(self.redis_url)


# Global settings instance
settings = Settings()
