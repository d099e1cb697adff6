"""
Standardized error taxonomy for openschema.

All project errors carry:
- a stable `code` (e.g. CONFIG_101)
- a human readable `message`
- a `category` and `severity`
- optional structured `data` and a `suggestion`

Driver errors raised by the wrapped database clients are NOT translated by
the stores; `classify_exception` is available to callers that want a
uniform error shape at their own boundary.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NETWORK = "network"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OpenSchemaError(Exception):
    """Base class for every error raised by openschema itself."""

    def __init__(
        self,
        code: str,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        data: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.category = category
        self.severity = severity
        self.data = data or {}
        self.suggestion = suggestion

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "data": self.data,
        }
        if self.suggestion:
            d["suggestion"] = self.suggestion
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)


# Configuration errors (CONFIG_1xx)


class UnsupportedProviderError(OpenSchemaError):
    """Raised by the store factory for an unknown provider name."""

    def __init__(self, provider: str, supported: List[str]):
        super().__init__(
            code="CONFIG_101",
            message=f"Unsupported provider: {provider!r}",
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            data={"provider": provider, "supported": list(supported)},
            suggestion=f"Use one of: {', '.join(supported)}",
        )


# Validation errors (VALID_2xx)


class InvalidCollectionNameError(OpenSchemaError):
    """Raised when a collection name cannot be used as a table/key namespace."""

    def __init__(self, name: Any, pattern: str):
        super().__init__(
            code="VALID_201",
            message=f"Invalid collection name: {name!r}",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.MEDIUM,
            data={"collection": name, "pattern": pattern},
            suggestion="Collection names must start with a letter or underscore and contain only letters, digits and underscores (max 63 chars).",
        )


# Network errors (NET_5xx)


class BackendUnavailableError(OpenSchemaError):
    """A database server could not be reached."""

    def __init__(self, backend: str, reason: str):
        super().__init__(
            code="NET_501",
            message=f"{backend} backend unavailable: {reason}",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.HIGH,
            data={"backend": backend, "reason": reason},
            suggestion="Check the connection string and that the server is running.",
        )


# System errors (SYS_9xx)


class InternalError(OpenSchemaError):
    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="SYS_901",
            message=message,
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.HIGH,
            data=data,
        )


def classify_exception(exc: BaseException) -> OpenSchemaError:
    """
    Map an arbitrary exception to an OpenSchemaError.

    Project errors pass through untouched, driver connectivity failures
    become BackendUnavailableError, and everything else becomes an
    InternalError that records the original exception type.
    """
    import redis
    from pymongo.errors import ConnectionFailure
    from sqlalchemy.exc import OperationalError

    if isinstance(exc, OpenSchemaError):
        return exc
    if isinstance(exc, (redis.ConnectionError, redis.TimeoutError)):
        return BackendUnavailableError("redis", str(exc))
    if isinstance(exc, ConnectionFailure):
        return BackendUnavailableError("mongodb", str(exc))
    if isinstance(exc, OperationalError):
        return BackendUnavailableError("postgresql", str(exc.orig or exc))
    return InternalError(str(exc) or exc.__class__.__name__, data={"exception_type": exc.__class__.__name__})
