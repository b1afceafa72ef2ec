"""
Observability helpers for the budget engine: JSON logging, request context, tracing, and log privacy.
"""

from .privacy import hash_payload, redact_fields
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContext,
    RequestContextLogFilter,
    TelemetryConfig,
    bind_request_context,
    current_request_context,
    current_request_id,
    install_request_context,
    reset_request_context,
    setup_telemetry,
    user_hash_from_path,
)

__all__ = [
    "hash_payload",
    "redact_fields",
    "CORRELATION_ID_HEADER",
    "RequestContext",
    "RequestContextLogFilter",
    "TelemetryConfig",
    "bind_request_context",
    "current_request_context",
    "current_request_id",
    "install_request_context",
    "reset_request_context",
    "setup_telemetry",
    "user_hash_from_path",
]
