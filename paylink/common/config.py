"""Central environment-driven settings shared by both services.

Each service process loads this once at startup. Service-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    database_url: str = "sqlite:///./paylink.db"
    redis_url: str = "redis://redis:6379/0"
    cache_backend: Literal["redis", "memory"] = "memory"
    auth_service_url: str = "http://identity:8001"
    auth_request_timeout_seconds: float = 5.0
    token_cache_ttl_seconds: int = 300
    idempotency_ttl_seconds: int = 86400
    jwt_secret: str = "change-me"
    jwt_expires_in_seconds: int = 3600
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
