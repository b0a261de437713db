"""
Authentication middleware for the Ingest service.
"""

from typing import Optional

from fastapi import HTTPException, Request

from shared.errors import AuthenticationError, AuthFailureReason
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector
from ..validation.token_validator import AuthenticatedPrincipal, TokenValidator


class AuthMiddleware:
    """Bearer-token gate in front of business routes.

    Used as a FastAPI dependency: ``Depends(auth_middleware)``. Rejected
    requests never reach the route handler.
    """

    def __init__(self, token_validator: TokenValidator, metrics: Optional[MetricsCollector] = None):
        self.token_validator = token_validator
        self.metrics = metrics
        self.logger = get_logger("ingest.auth_middleware")

    async def __call__(self, request: Request) -> AuthenticatedPrincipal:
        return await self.authenticate_request(request)

    async def authenticate_request(self, request: Request) -> AuthenticatedPrincipal:
        """Authenticate the request and attach the principal to ``request.state``."""
        try:
            token = self.extract_bearer_token(request.headers.get("Authorization"))
            principal = await self.token_validator.verify(token)
        except AuthenticationError as e:
            raise self._reject(e) from e

        request.state.principal = principal
        set_user_context(user_id=principal.subject)

        self.logger.info("Request authenticated", user_id=principal.subject)
        return principal

    @staticmethod
    def extract_bearer_token(auth_header: Optional[str]) -> str:
        """Return the token from an ``Authorization: Bearer <token>`` header."""
        if not auth_header:
            raise AuthenticationError(AuthFailureReason.MISSING_TOKEN, "Authorization header required")

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationError(AuthFailureReason.MALFORMED_TOKEN, "Invalid authorization header format")

        return parts[1]

    def _reject(self, error: AuthenticationError) -> HTTPException:
        # Callers always see the same 401; the reason is for operators only.
        self.logger.warning(
            "Authentication failed",
            reason=error.reason.value,
            error=error.message,
            details=error.details
        )
        if self.metrics is not None:
            self.metrics.record_auth_failure(error.reason.value)

        return HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )
