from __future__ import annotations

import json
import os
import re
import time
import uuid
from typing import Any, Dict, Optional

# user:password@ in URLs, Password=...; in key/value connection strings
_URL_PASSWORD = re.compile(r"(://[^:/@]*:)[^@]*@")
_KV_PASSWORD = re.compile(r"((?:^|;)\s*(?:password|pwd)\s*=)[^;]*", re.IGNORECASE)


def redact_connection(connection: Optional[str]) -> Optional[str]:
    """Mask the password in a connection string so it can be logged."""
    if not connection:
        return connection
    masked = _URL_PASSWORD.sub(r"\1***@", connection)
    return _KV_PASSWORD.sub(r"\1***", masked)


def build_log_context(*, tool: str, provider: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a per-invocation context object for structured logs.

    Only the provider name is recorded; connection details go through
    redact_connection before they reach an event.
    """
    ctx: Dict[str, Any] = {
        "tool": tool,
        "request_id": str(uuid.uuid4()),
        "ts_ms": int(time.time() * 1000),
        "service": os.getenv("OPENSCHEMA_SERVICE_NAME", "openschema"),
    }
    if provider:
        ctx["provider"] = provider
    return ctx


def log_event(event: str, *, ctx: Dict[str, Any], data: Optional[Dict[str, Any]] = None) -> None:
    """Print one JSON line per event to stdout; null data values are dropped."""
    payload = dict(ctx)
    payload["event"] = event
    if data:
        payload["data"] = {k: v for k, v in data.items() if v is not None}
    print(json.dumps(payload, sort_keys=True, default=str))
