"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the MotorScope orchestrator.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., REDIS_URL).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Persistent key-value store
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = "motorscope:"
    redis_events_channel: str = "motorscope:events"

    # Remote API
    backend_base_url: str = "http://localhost:8080"
    backend_api_prefix: str = "/api"
    http_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)

    # Structured-extraction service
    extraction_url: str | None = None
    extraction_api_key: str | None = None
    extraction_timeout_seconds: float = Field(default=60.0, gt=0.0, le=600.0)

    # Local HTTP surface
    api_host: str = "127.0.0.1"
    api_port: int = 8024
    api_keys: str | None = None  # comma-separated; unset = dev mode
    cors_origins: str = "http://localhost:5173"
    ws_events_enabled: bool = True
    ws_max_connections: int = Field(default=50, ge=1, le=1000)
    ws_heartbeat_interval: int = Field(default=30, ge=5, le=600)

    # Observability
    metrics_port: int = 8000
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "motorscope-orchestrator"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def backend_api_url(self) -> str:
        """Base URL for remote API calls, including the API prefix."""
        return f"{self.backend_base_url.rstrip('/')}{self.backend_api_prefix}"

    @property
    def extraction_configured(self) -> bool:
        """Check if the structured-extraction service is configured."""
        return self.extraction_url is not None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
