"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when a required setting is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Rate limiting (fixed per deployment)
    rate_limit: int = 10  # Requests per window
    rate_limit_window_seconds: int = 60

    # Counter store
    store_backend: str = "redis"  # "redis" or "memory"
    redis_url: str | None = "redis://localhost:6379"
    redis_prefix: str = "agentgate:"
    redis_socket_timeout: float = 2.0

    # Availability monitor
    backend_health_url: str = "http://localhost:3001/api/v1/health"
    health_check_interval_seconds: float = 30.0
    health_check_max_interval_seconds: float = 300.0  # 5 minutes
    health_probe_timeout_seconds: float = 3.0

    # HTTP client
    http_max_retries: int = 2  # 3 attempts total
    http_backoff_base_ms: float = 500.0
    http_backoff_max_ms: float = 5000.0
    http_timeout_connect: float = 5.0
    http_timeout_read: float = 60.0

    # LLM provider
    anthropic_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    llm_default_model: str = "claude-3-opus-20240229"
    llm_default_max_tokens: int = 1024
    llm_default_temperature: float = 0.7

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for quick access
settings = get_settings()
