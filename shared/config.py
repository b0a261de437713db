"""
Shared configuration management for the Submission Ingest Layer.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    log_format: str = "json"
    api_prefix: str = "/api/v1"

    # Identity provider and store project
    supabase_url: str = Field(
        default="http://localhost:54321",
        validation_alias=AliasChoices("INGEST_SUPABASE_URL", "SUPABASE_URL", "supabase_url"),
    )
    supabase_service_role_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "INGEST_SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "supabase_service_role_key"
        ),
    )

    # Security
    jwks_url: Optional[str] = None
    jwks_cache_ttl: int = 3600
    jwks_requests_per_minute: int = 10
    jwt_leeway_seconds: int = 0
    http_timeout: float = 10.0

    # Backing store: "postgrest" (Supabase REST) or "postgres" (direct asyncpg)
    store_backend: str = "postgrest"
    postgres_dsn: str = "postgresql://localhost:5432/ingest"

    @property
    def resolved_jwks_url(self) -> str:
        """JWKS endpoint, derived from the Supabase project URL unless overridden."""
        if self.jwks_url:
            return self.jwks_url
        return f"{self.supabase_url.rstrip('/')}/auth/v1/.well-known/jwks.json"

    @property
    def postgrest_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
