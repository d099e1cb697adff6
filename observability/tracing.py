"""
OpenTelemetry tracing for store operations.

Spans are only recorded when the optional `tracing` extra is installed and
tracing is switched on. Configure via environment variables:
- OTEL_ENABLED: "true" to enable (default: false)
- OTEL_SERVICE_NAME: Service name for traces (default: openschema)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint (default: http://localhost:4317)
"""

from __future__ import annotations

import functools
import logging
import os
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

OTEL_AVAILABLE = False
try:
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    OTEL_AVAILABLE = True
except ImportError:
    pass

_tracer: Optional[Any] = None
_initialized = False


def is_tracing_enabled() -> bool:
    """Check if tracing is enabled."""
    return os.getenv("OTEL_ENABLED", "false").lower() == "true" and OTEL_AVAILABLE


def init_tracing(service_name: str = None, endpoint: str = None) -> bool:
    """
    Initialize OpenTelemetry tracing.

    Returns True if tracing was successfully initialized.
    """
    global _tracer, _initialized

    if _initialized:
        return True

    if not is_tracing_enabled():
        logger.debug("OpenTelemetry tracing is disabled")
        return False

    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        svc_name = service_name or os.getenv("OTEL_SERVICE_NAME", "openschema")
        otlp_endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

        provider = TracerProvider(resource=Resource(attributes={"service.name": svc_name}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        trace.set_tracer_provider(provider)

        _tracer = trace.get_tracer(svc_name)
        _initialized = True

        logger.info(f"OpenTelemetry tracing initialized: service={svc_name}, endpoint={otlp_endpoint}")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry tracing: {e}")
        return False


def get_tracer() -> Optional[Any]:
    """Get the global tracer instance."""
    if not _initialized:
        init_tracing()
    return _tracer


def _attr_value(value: Any) -> Any:
    return value if isinstance(value, (bool, int, float)) else str(value)


@contextmanager
def trace_span(name: str, attributes: Dict[str, Any] = None):
    """
    Context manager for creating trace spans.

    Usage:
        with trace_span("openschema.sqlite.insert", {"db.collection": "users"}):
            ...

    If tracing is disabled, this is a no-op and yields None.
    """
    tracer = get_tracer()

    if tracer is None:
        yield None
        return

    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _attr_value(value))
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            if OTEL_AVAILABLE:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
            raise


def traced(name: str = None, attributes: Dict[str, Any] = None):
    """
    Decorator for tracing store methods.

    Usage:
        @traced(attributes={"db.system": "redis"})
        def get_all(self, collection):
            ...

    When the wrapped callable is a method whose first positional argument
    after `self` is a string, it is recorded as `db.collection`.
    """

    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            span_attrs = dict(attributes or {})
            span_attrs["function.name"] = func.__name__
            if len(args) > 1 and isinstance(args[1], str):
                span_attrs["db.collection"] = args[1]

            with trace_span(span_name, span_attrs):
                return func(*args, **kwargs)

        return wrapper

    return decorator
