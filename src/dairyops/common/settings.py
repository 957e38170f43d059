"""Configuration management using pydantic-settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DAIRYOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase (identity provider + data store)
    supabase_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the Supabase project",
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        description="Service role key used for store and identity calls",
    )

    # Webhook
    webhook_secret: str | None = Field(
        default=None,
        description="Shared secret for payment-provider webhook HMAC",
    )
    webhook_signature_header: str = Field(
        default="x-webhook-signature",
        description="Header carrying the webhook signature",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Host for the API server",
    )
    port: int = Field(
        default=8080,
        description="Port for the API server",
    )

    # Timeouts / resilience
    http_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for identity and store requests",
    )
    store_failure_threshold: int = Field(
        default=5,
        description="Circuit breaker failures before opening",
    )
    store_recovery_timeout: float = Field(
        default=30.0,
        description="Seconds before circuit breaker half-open",
    )
    store_half_open_max_calls: int = Field(
        default=3,
        description="Successful calls to close half-open circuit",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render log events as JSON instead of console output",
    )

    # Tracing
    tracing_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    tracing_otlp_endpoint: str | None = Field(
        default=None,
        description="OTLP collector endpoint (e.g. http://localhost:4317)",
    )
    tracing_console: bool = Field(
        default=False,
        description="Emit traces to console (debug only)",
    )

    @property
    def rest_url(self) -> str:
        """Base URL of the PostgREST endpoint."""
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        """Base URL of the auth endpoint."""
        return f"{self.supabase_url.rstrip('/')}/auth/v1"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
