"""
JWKS client package.

Retrieves and caches the identity provider's JSON Web Key Set used to
verify bearer-token signatures.

Key points:
- One process-wide cache per key endpoint, filled lazily on first miss.
- Concurrent misses share one in-flight fetch.
- Refreshes are capped per minute so unknown key ids cannot hammer the IdP.
"""

from .client import JWKSClient, RefreshRateLimiter, SigningKey, get_jwks_client

__all__ = ["JWKSClient", "RefreshRateLimiter", "SigningKey", "get_jwks_client"]
