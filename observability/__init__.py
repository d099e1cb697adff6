from .logging import build_log_context, log_event, redact_connection
from .tracing import is_tracing_enabled, trace_span, traced

__all__ = ["build_log_context", "is_tracing_enabled", "log_event", "redact_connection", "trace_span", "traced"]
