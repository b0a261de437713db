"""
Shared logging configuration for the Submission Ingest Layer.

Log lines are JSON by default. Every event carries the service name, the
current trace/span ids when a span is recording, and the request and user
ids bound by the HTTP middleware and the authenticator. Credentials never
reach the output: bearer tokens and API keys are masked before rendering.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Dict, Optional

import structlog
from opentelemetry import trace

# Correlation ids for the request being served
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = frozenset({"authorization", "token", "apikey", "service_role_key", "supabase_service_role_key"})

EventDict = Dict[str, Any]


def configure_logging(service_name: str, log_level: str = "info", log_format: str = "json") -> None:
    """Configure structured logging for a service.

    ``log_format`` is ``json`` for deployed environments or ``console`` for
    human-readable local output.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            service_context(service_name),
            add_trace_context,
            add_correlation_context,
            redact_credentials,
            add_timestamp,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def service_context(service_name: str) -> Callable[[Any, str, EventDict], EventDict]:
    """Build a processor stamping events with the service name."""

    def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service_context


def add_trace_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add trace context to log events."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        if span_context.span_id != 0:
            event_dict["span_id"] = f"{span_context.span_id:016x}"

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add request and user ids bound for the current request."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    user_id = user_id_var.get()
    if user_id:
        event_dict["user_id"] = user_id

    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-bearing fields, including inside nested mappings."""
    return _redact(event_dict)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, str) and value[:7].lower() == "bearer ":
        return f"{value[:6]} {REDACTED}"
    return value


def add_timestamp(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add epoch timestamp alongside the ISO one."""
    event_dict["epoch"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id, generating one if the caller sent none."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None):
    if user_id:
        user_id_var.set(user_id)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    user_id_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
