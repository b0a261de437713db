"""
Ingest Service package for the Submission Ingest Layer.

This package exposes the FastAPI application that authenticates callers and
records content submissions exactly once:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.jwks: JWKS client for fetching and caching signing keys.
- app.validation: Bearer-token verification (signature, expiry, claims).
- app.domain: Request authentication gate.
- app.ingestion: Idempotent check-then-insert coordinator and models.
- app.persistence: PostgREST and PostgreSQL post stores.

Design notes:
- Module import must not perform network calls. All IO happens in route
  handlers or the lifespan hooks.
- Use the shared/ utilities for logging, metrics, config and errors.
- The only in-process shared state is the JWKS cache; uniqueness of
  submissions is enforced by the store.
"""
