"""
Logging and tracing bootstrap.

Spans are always created so that log lines and span events share a trace
context; they are exported to Axiom over OTLP/HTTP only when a token is set.
"""

from typing import Any, Callable, Dict, Optional
import asyncio
import functools
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from common.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    force=True,
)

_initialized = False
_tracer: Optional[trace.Tracer] = None


def _initialize_telemetry() -> None:
    """Install the tracer provider once per process."""
    global _initialized, _tracer

    if _initialized:
        return

    provider = TracerProvider(
        resource=Resource(
            attributes={
                SERVICE_NAME: settings.otel_service_name,
                SERVICE_VERSION: settings.otel_service_version,
                "deployment.environment": settings.environment.value,
            }
        )
    )
    if settings.axiom_token:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_traces_endpoint,
            headers={
                "Authorization": f"Bearer {settings.axiom_token}",
                "X-Axiom-Dataset": settings.axiom_dataset or "",
            },
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(settings.otel_service_name)

    _initialized = True
    logging.getLogger(__name__).info(
        f"Telemetry initialized for {settings.otel_service_name}",
        extra={"trace_export": bool(settings.axiom_token)},
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger, initialising telemetry on first use.
    Use this instead of logging.getLogger() directly.
    """
    if not _initialized:
        _initialize_telemetry()
    return logging.getLogger(name)


def _span_name(func: Callable, args: tuple) -> str:
    # Bound methods are named Class.method
    if args and hasattr(args[0], func.__name__):
        return f"{type(args[0]).__name__}.{func.__name__}"
    return func.__name__


def _mark_failed(span: trace.Span, error: BaseException) -> None:
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, type(error).__name__))


def trace_span(func):
    """Wrap a sync or async function in a span named after it.

    Exceptions are recorded on the span and re-raised unchanged.
    """

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with _tracer.start_as_current_span(
            _span_name(func, args), record_exception=False, set_status_on_exception=False
        ) as span:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _mark_failed(span, e)
                raise

    @functools.wraps(func)
    async def async_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with _tracer.start_as_current_span(
            _span_name(func, args), record_exception=False, set_status_on_exception=False
        ) as span:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                _mark_failed(span, e)
                raise

    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper


def log_span_event(message: str, attributes: Optional[Dict[str, Any]] = None) -> None:
    """
    Attach a message to the current span as an event and log it at info.
    """
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.add_event(message, attributes=attributes or {})

    get_logger(__name__).info(message, extra=attributes)
