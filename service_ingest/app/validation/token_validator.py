"""
Token validation service for the Ingest service.
"""

import json
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from jose import jws, jwt
from jose.exceptions import JOSEError

from shared.errors import AuthenticationError, AuthFailureReason, KeyNotFoundError, KeyUnavailableError
from shared.logging import get_logger
from ..jwks.client import JWKSClient


ALLOWED_ALGORITHMS = ("RS256", "RS384", "RS512", "ES256", "ES384")


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """Caller identity derived from a verified token."""

    subject: str
    email: str
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only view over a private copy
        object.__setattr__(self, "extensions", MappingProxyType(dict(self.extensions)))

    @property
    def user_id(self) -> str:
        return self.subject


class TokenValidator:
    """Verifies bearer tokens against the provider's published keys."""

    def __init__(
        self,
        key_resolver: JWKSClient,
        *,
        leeway: int = 0,
        algorithms: Iterable[str] = ALLOWED_ALGORITHMS,
        clock: Callable[[], float] = time.time,
    ):
        self.key_resolver = key_resolver
        self.leeway = leeway
        self.algorithms = frozenset(algorithms)
        self._clock = clock
        self.logger = get_logger("ingest.validator")

    async def verify(self, token: Optional[str]) -> AuthenticatedPrincipal:
        """Verify a raw JWT and return the principal it asserts.

        Raises AuthenticationError carrying the rejection reason.
        """
        if not token:
            raise AuthenticationError(AuthFailureReason.MISSING_TOKEN, "Missing bearer token")

        header = self._read_header(token)
        kid = header.get("kid")
        algorithm = header.get("alg")
        if not isinstance(kid, str) or not kid:
            raise AuthenticationError(AuthFailureReason.MALFORMED_TOKEN, "Token header missing key id")
        if algorithm not in self.algorithms:
            raise AuthenticationError(
                AuthFailureReason.MALFORMED_TOKEN,
                "Token signed with unsupported algorithm",
                details={"alg": algorithm}
            )

        try:
            signing_key = await self.key_resolver.resolve(kid)
        except KeyNotFoundError as exc:
            raise AuthenticationError(AuthFailureReason.UNKNOWN_KEY, "Unknown signing key", details={"kid": kid}) from exc
        except KeyUnavailableError as exc:
            raise AuthenticationError(
                AuthFailureReason.KEY_UNAVAILABLE,
                "Signing keys unavailable",
                details={"kid": kid, **exc.details}
            ) from exc

        if algorithm != signing_key.algorithm:
            raise AuthenticationError(
                AuthFailureReason.INVALID_SIGNATURE,
                "Token algorithm does not match signing key",
                details={"kid": kid, "alg": algorithm}
            )

        try:
            payload = jws.verify(token, signing_key.key, algorithms=[algorithm])
        except JOSEError as exc:
            raise AuthenticationError(
                AuthFailureReason.INVALID_SIGNATURE,
                "Signature verification failed",
                details={"kid": kid}
            ) from exc

        claims = self._decode_claims(payload)
        self._check_expiry(claims)
        principal = self._to_principal(claims)

        self.logger.debug("Token verified", sub=principal.subject, kid=kid)
        return principal

    def _read_header(self, token: str) -> Dict[str, Any]:
        if token.count(".") != 2:
            raise AuthenticationError(AuthFailureReason.MALFORMED_TOKEN, "Token is not a compact JWS")
        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as exc:
            raise AuthenticationError(AuthFailureReason.MALFORMED_TOKEN, "Token header is not decodable") from exc
        if not isinstance(header, dict):
            raise AuthenticationError(AuthFailureReason.MALFORMED_TOKEN, "Token header is not an object")
        return header

    def _decode_claims(self, payload: bytes) -> Dict[str, Any]:
        try:
            claims = json.loads(payload)
        except ValueError as exc:
            raise AuthenticationError(AuthFailureReason.MALFORMED_CLAIMS, "Token payload is not JSON") from exc
        if not isinstance(claims, dict):
            raise AuthenticationError(AuthFailureReason.MALFORMED_CLAIMS, "Token payload is not an object")
        return claims

    def _check_expiry(self, claims: Dict[str, Any]) -> None:
        exp = claims.get("exp")
        # bool is an int subclass but never a valid timestamp
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise AuthenticationError(AuthFailureReason.MALFORMED_CLAIMS, "Token missing numeric exp claim")

        now = self._clock()
        if now > exp + self.leeway:
            raise AuthenticationError(
                AuthFailureReason.EXPIRED,
                "Token has expired",
                details={"exp": exp, "now": int(now)}
            )

    def _to_principal(self, claims: Dict[str, Any]) -> AuthenticatedPrincipal:
        subject = claims.get("sub")
        email = claims.get("email")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError(AuthFailureReason.MALFORMED_CLAIMS, "Token missing subject claim")
        if not isinstance(email, str) or not email:
            raise AuthenticationError(AuthFailureReason.MALFORMED_CLAIMS, "Token missing email claim")

        extensions = {name: value for name, value in claims.items() if name not in ("sub", "email")}
        return AuthenticatedPrincipal(subject=subject, email=email, extensions=extensions)
