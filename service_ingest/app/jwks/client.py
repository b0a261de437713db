"""
JWKS client for the identity provider's published signing keys.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional

import httpx
from jose import jwk
from jose.exceptions import JOSEError

from shared.errors import KeyNotFoundError, KeyUnavailableError
from shared.logging import get_logger


_DEFAULT_ALGORITHMS = {
    ("RSA", None): "RS256",
    ("EC", "P-256"): "ES256",
    ("EC", "P-384"): "ES384",
}


@dataclass(frozen=True)
class SigningKey:
    """A public key from the provider's key set."""

    kid: str
    algorithm: str
    key: Any = field(repr=False, compare=False)


class RefreshRateLimiter:
    """Sliding-window cap on outbound key-set fetches."""

    def __init__(self, max_calls: int, period: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._calls: Deque[float] = deque()

    def try_acquire(self) -> bool:
        now = self._clock()
        while self._calls and now - self._calls[0] >= self.period:
            self._calls.popleft()

        if len(self._calls) >= self.max_calls:
            return False

        self._calls.append(now)
        return True


class JWKSClient:
    """Fetches, caches and resolves signing keys by key id.

    The cache is populated lazily on the first miss and kept until
    ``clear_cache`` is called. Concurrent misses share a single in-flight
    fetch, and fetches are capped at ``requests_per_minute``.
    """

    def __init__(
        self,
        jwks_url: str,
        cache_ttl: int = 3600,
        requests_per_minute: int = 10,
        http_timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.logger = get_logger("ingest.jwks")

        self._clock = clock
        self._keys: Dict[str, SigningKey] = {}
        self._cache_timestamp: Optional[float] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._rate_limiter = RefreshRateLimiter(requests_per_minute, 60.0, clock)
        self._client = httpx.AsyncClient(timeout=http_timeout, transport=transport)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def warmup(self) -> None:
        """Eagerly load the key set so the first request does not pay the cost."""
        try:
            await self._refresh()
        except KeyUnavailableError as exc:
            self.logger.warning("JWKS warmup failed", error=exc.message)

    async def resolve(self, kid: str) -> SigningKey:
        """Return the signing key for ``kid``.

        Raises KeyNotFoundError when a fresh key set does not contain the id,
        and KeyUnavailableError when no fresh set can be obtained and the id
        is not cached.
        """
        cached = self._keys.get(kid)
        if cached is not None and not self._is_stale():
            return cached

        try:
            await self._refresh()
        except KeyUnavailableError as exc:
            if cached is not None:
                self.logger.warning("Serving stale signing key", kid=kid, error=exc.message)
                return cached
            raise

        key = self._keys.get(kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid, known_kids=sorted(self._keys))
            raise KeyNotFoundError(kid)
        return key

    def clear_cache(self):
        """Drop all cached keys; the next lookup refetches."""
        self._keys = {}
        self._cache_timestamp = None
        self.logger.info("JWKS cache cleared")

    @property
    def cached_kids(self):
        return sorted(self._keys)

    @property
    def requests_per_minute(self) -> int:
        return self._rate_limiter.max_calls

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def _is_stale(self) -> bool:
        if self._cache_timestamp is None:
            return True
        return self._clock() - self._cache_timestamp >= self.cache_ttl

    async def _refresh(self) -> None:
        """Refresh the key set, joining an in-flight fetch if there is one."""
        task = self._refresh_task
        if task is None or task.done():
            if not self._rate_limiter.try_acquire():
                self.logger.warning("JWKS refresh rate limited", jwks_url=self.jwks_url)
                raise KeyUnavailableError(
                    "JWKS refresh rate limit exceeded",
                    details={"jwks_url": self.jwks_url}
                )
            task = asyncio.ensure_future(self._fetch_keys())
            task.add_done_callback(self._on_refresh_done)
            self._refresh_task = task

        # Shielded so a cancelled request does not cancel the fetch other
        # requests are waiting on.
        await asyncio.shield(task)

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Marks the exception retrieved when every waiter was cancelled.
            task.exception()

    async def _fetch_keys(self) -> None:
        try:
            response = await self._client.get(self.jwks_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.error("Failed to fetch JWKS", jwks_url=self.jwks_url, error=str(exc))
            raise KeyUnavailableError(
                "Failed to fetch signing keys",
                details={"jwks_url": self.jwks_url, "error": str(exc)}
            ) from exc

        raw_keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(raw_keys, list):
            self.logger.error("JWKS response missing 'keys' array", jwks_url=self.jwks_url)
            raise KeyUnavailableError("JWKS response missing 'keys' array", details={"jwks_url": self.jwks_url})

        keys: Dict[str, SigningKey] = {}
        for key_data in raw_keys:
            signing_key = self._parse_key(key_data)
            if signing_key is not None:
                keys[signing_key.kid] = signing_key

        # Rotation replaces the whole set; previously cached keys are superseded.
        self._keys = keys
        self._cache_timestamp = self._clock()
        self.logger.info("JWKS refreshed successfully", keys_count=len(keys))

    def _parse_key(self, key_data: Any) -> Optional[SigningKey]:
        if not isinstance(key_data, dict):
            return None

        kid = key_data.get("kid")
        if not isinstance(kid, str) or not kid:
            return None
        if key_data.get("use", "sig") != "sig":
            return None

        algorithm = key_data.get("alg") or _DEFAULT_ALGORITHMS.get(
            (key_data.get("kty"), key_data.get("crv"))
        )
        if not algorithm:
            self.logger.warning("Skipping JWK with unknown algorithm", kid=kid, kty=key_data.get("kty"))
            return None

        try:
            key = jwk.construct(key_data, algorithm=algorithm)
        except (JOSEError, ValueError, TypeError) as exc:
            self.logger.warning("Skipping unusable JWK", kid=kid, error=str(exc))
            return None

        return SigningKey(kid=kid, algorithm=algorithm, key=key)


_clients: Dict[str, JWKSClient] = {}


def get_jwks_client(jwks_url: str, **kwargs) -> JWKSClient:
    """Get or create the process-wide client for a key endpoint.

    An open client is reused as is; settings passed on later calls do not
    reconfigure it, and a mismatch is logged.
    """
    client = _clients.get(jwks_url)
    if client is None or client.is_closed:
        client = JWKSClient(jwks_url, **kwargs)
        _clients[jwks_url] = client
        return client

    current = {"cache_ttl": client.cache_ttl, "requests_per_minute": client.requests_per_minute}
    ignored = {name: value for name, value in kwargs.items() if name in current and current[name] != value}
    if ignored:
        client.logger.warning(
            "Reusing JWKS client; new settings ignored",
            jwks_url=jwks_url,
            ignored=ignored,
            current=current,
        )
    return client
