"""
Telemetry bootstrap for the budget engine service.

`setup_telemetry` wires JSON logging and, when ENABLE_TELEMETRY is set,
OpenTelemetry tracing with FastAPI and httpx instrumentation. Every log record
carries the service name, the request id, a hashed user id for `/users/{id}`
routes, and the active trace/span ids.

`install_request_context` adds the middleware that binds that per-request
context so ledger calls can forward the same `x-request-id`.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar, Token
from dataclasses import dataclass
from uuid import uuid4

from fastapi import FastAPI, Request
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, SpanContext
from pythonjsonlogger import jsonlogger

from .privacy import hash_payload

CORRELATION_ID_HEADER = "x-request-id"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318/v1/traces"
LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s %(message)s "
    "%(service_name)s %(request_id)s %(user_hash)s %(trace_id)s %(span_id)s"
)


@dataclass(frozen=True, slots=True)
class RequestContext:
    request_id: str | None = None
    user_hash: str | None = None


RequestContextToken = Token

_context_var: ContextVar[RequestContext] = ContextVar("budget_engine_request", default=RequestContext())
_logging_configured = False
_httpx_instrumented = False


@dataclass(frozen=True, slots=True)
class TelemetryConfig:
    service_name: str
    traces_enabled: bool = False
    console_export: bool = False
    log_level: str = "INFO"
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT

    @classmethod
    def from_env(cls, service_name: str) -> "TelemetryConfig":
        return cls(
            service_name=os.getenv("OTEL_SERVICE_NAME", service_name),
            traces_enabled=_parse_bool(os.getenv("ENABLE_TELEMETRY", "false")),
            console_export=_parse_bool(os.getenv("OTEL_CONSOLE_EXPORT", "false")),
            log_level=os.getenv("BUDGET_ENGINE_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT),
        )


def setup_telemetry(app: FastAPI, service_name: str, config: TelemetryConfig | None = None) -> TelemetryConfig:
    """
    Configure logging and (optionally) tracing for the engine's FastAPI app.

    Args:
        app: FastAPI app instance that should emit spans/logs.
        service_name: Logical service identifier, overridable via OTEL_SERVICE_NAME.
        config: Explicit configuration; read from the environment when omitted.

    Returns:
        The configuration that was applied.
    """

    config = config or TelemetryConfig.from_env(service_name)
    _configure_logging(config)

    if config.traces_enabled:
        _configure_tracing(config)
        FastAPIInstrumentor.instrument_app(app)
        _instrument_httpx()
        LoggingInstrumentor().instrument(set_logging_format=False)
    return config


def install_request_context(app: FastAPI, header_name: str = CORRELATION_ID_HEADER) -> None:
    """Register middleware that binds the request id and hashed user id for each request."""

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = ensure_request_id(request, header_name)
        token = bind_request_context(request_id, user_hash=user_hash_from_path(request.url.path))
        try:
            response = await call_next(request)
            response.headers.setdefault(header_name, request_id)
            return response
        finally:
            reset_request_context(token)


def ensure_request_id(request: Request, header_name: str = CORRELATION_ID_HEADER) -> str:
    """Inbound request id, or a freshly minted UUID4 stored on `request.state`."""

    request_id = request.headers.get(header_name) or getattr(request.state, "request_id", None) or str(uuid4())
    request.state.request_id = request_id
    return request_id


def user_hash_from_path(path: str) -> str | None:
    """Hash the `{user_id}` segment of `/users/{user_id}/...` routes."""

    segments = [segment for segment in path.split("/") if segment]
    if len(segments) >= 2 and segments[0] == "users":
        return hash_payload(segments[1])
    return None


def current_request_id() -> str:
    """Request id bound to the current context, or a fresh one outside a request."""

    return _context_var.get().request_id or str(uuid4())


def current_request_context() -> RequestContext:
    return _context_var.get()


def bind_request_context(request_id: str | None, *, user_hash: str | None = None) -> RequestContextToken:
    return _context_var.set(RequestContext(request_id=request_id, user_hash=user_hash))


def reset_request_context(token: RequestContextToken | None) -> None:
    if token is not None:
        _context_var.reset(token)


def _configure_logging(config: TelemetryConfig) -> None:
    global _logging_configured
    if _logging_configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    handler.addFilter(RequestContextLogFilter(config.service_name, config.traces_enabled))

    logging.basicConfig(level=config.log_level, handlers=[handler], force=True)
    _logging_configured = True


def _configure_tracing(config: TelemetryConfig) -> None:
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: config.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint)))
    if config.console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)


def _instrument_httpx() -> None:
    global _httpx_instrumented
    if _httpx_instrumented:
        return
    HTTPXClientInstrumentor().instrument()
    _httpx_instrumented = True


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class RequestContextLogFilter(logging.Filter):
    """Stamp records with the service name, request context, and trace ids."""

    def __init__(self, service_name: str, traces_enabled: bool) -> None:
        super().__init__()
        self._service_name = service_name
        self._traces_enabled = traces_enabled

    def filter(self, record: logging.LogRecord) -> bool:
        context = _context_var.get()
        record.service_name = self._service_name
        record.request_id = context.request_id
        record.user_hash = context.user_hash
        record.trace_id, record.span_id = self._span_ids() if self._traces_enabled else (None, None)
        return True

    @staticmethod
    def _span_ids() -> tuple[str | None, str | None]:
        span = trace.get_current_span()
        span_context = span.get_span_context() if isinstance(span, Span) else None
        if isinstance(span_context, SpanContext) and span_context.is_valid:
            return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")
        return None, None
