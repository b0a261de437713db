"""
Shared error handling for the Submission Ingest Layer.
"""

from enum import Enum
from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ServiceException(Exception):
    """Base exception for ingest layer services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthFailureReason(str, Enum):
    """Why a bearer token was rejected. Logged, never returned to callers."""
    MISSING_TOKEN = "missing_token"
    MALFORMED_TOKEN = "malformed_token"
    UNKNOWN_KEY = "unknown_key"
    KEY_UNAVAILABLE = "key_unavailable"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MALFORMED_CLAIMS = "malformed_claims"


class AuthenticationError(ServiceException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(
        self,
        reason: AuthFailureReason,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        super().__init__("UNAUTHENTICATED", message, details)


class ValidationError(ServiceException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class KeyResolutionError(ServiceException):
    """Signing key could not be resolved."""

    status_code = 401


class KeyNotFoundError(KeyResolutionError):
    """The key set was fetched but does not contain the requested key id."""

    def __init__(self, kid: str):
        super().__init__("KEY_NOT_FOUND", f"Signing key not found: {kid}", {"kid": kid})


class KeyUnavailableError(KeyResolutionError):
    """The key endpoint is unreachable or refreshes are rate limited."""

    def __init__(self, message: str = "Signing keys unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_UNAVAILABLE", message, details)


class StoreError(ServiceException):
    """Backing store call failed."""

    status_code = 500

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)


class DuplicateRecordError(StoreError):
    """Store rejected an insert because the source id already exists."""

    def __init__(self, source_id: str, details: Optional[Dict[str, Any]] = None):
        self.source_id = source_id
        super().__init__(f"Record already exists for source_id {source_id}", details)
        self.code = "DUPLICATE_RECORD"


class PersistenceFailure(ServiceException):
    """Ingestion could not be recorded. Safe for the caller to retry."""

    status_code = 500

    def __init__(self, message: str = "Failed to save post", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERSISTENCE_FAILURE", message, details)
