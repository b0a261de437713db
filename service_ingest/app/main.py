"""
Ingest service for the Submission Ingest Layer.
"""

from typing import Optional

from fastapi import Depends

from shared.base_service import BaseService
from shared.config import ServiceConfig
from .domain.auth_middleware import AuthMiddleware
from .ingestion.coordinator import IngestionCoordinator
from .ingestion.models import CreateIngestRequest
from .jwks.client import JWKSClient, get_jwks_client
from .persistence import PostStore, build_post_store
from .validation.token_validator import AuthenticatedPrincipal, TokenValidator


class IngestService(BaseService):
    """Ingest service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[PostStore] = None,
        key_resolver: Optional[JWKSClient] = None,
    ):
        super().__init__("ingest", 8020, config)

        self.key_resolver = key_resolver or get_jwks_client(
            self.config.resolved_jwks_url,
            cache_ttl=self.config.jwks_cache_ttl,
            requests_per_minute=self.config.jwks_requests_per_minute,
            http_timeout=self.config.http_timeout,
        )
        self.token_validator = TokenValidator(self.key_resolver, leeway=self.config.jwt_leeway_seconds)
        self.auth_middleware = AuthMiddleware(self.token_validator, self.metrics)

        self.store = store or build_post_store(self.config)
        self.coordinator = IngestionCoordinator(self.store, self.metrics)

        self._setup_ingest_routes()

    def _setup_ingest_routes(self):
        """Set up ingest-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "ingest",
                "message": "Submission Ingest Layer - Ingest Service",
                "version": "1.0.0"
            }

        @self.app.post(f"{self.config.api_prefix}/ingest", status_code=202)
        async def create_ingest(
            body: CreateIngestRequest,
            principal: AuthenticatedPrincipal = Depends(self.auth_middleware),
        ):
            """Record a submission once per source_id."""
            with self.metrics.time_operation("ingest_duration_seconds"):
                result = await self.coordinator.ingest(body.to_ingestion_request(), principal)
            return result.to_response()

    async def on_startup(self) -> None:
        await self.store.start()
        await self.key_resolver.warmup()
        self.logger.info("Ingest service started", jwks_url=self.key_resolver.jwks_url)

    async def on_shutdown(self) -> None:
        await self.store.stop()
        await self.key_resolver.close()
        self.logger.info("Ingest service stopped")


def create_app():
    """Create FastAPI application."""
    service = IngestService()
    return service.app


if __name__ == "__main__":
    service = IngestService()
    service.run()
