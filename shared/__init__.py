"""
Shared utilities for the Submission Ingest Layer.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI app scaffolding (lifespan, middleware, handlers)
- test_helpers: Signing keys, JWKS transport and in-memory store for tests

Do not import from service_* packages into shared/.
"""
