"""
LogeTogo API - Unified Error Handling

Error hierarchy shared by the lifecycle controller, the persistence
connector and the HTTP error handler.

Features:
- Hierarchical exception classes carrying an HTTP status code
- Error severity levels for prioritized handling
- Remediation suggestions surfaced in startup logs
- OpenTelemetry integration for error tracing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    WARNING = "warning"    # Caller-fixable, request continues to be served
    ERROR = "error"        # Operation failed
    CRITICAL = "critical"  # Server cannot reach or stay in the ready phase


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class LogeTogoError(Exception):
    """
    Base exception for all LogeTogo-specific errors.

    Provides:
    - HTTP status code used by the unified error handler
    - Severity level
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: str = "LOGETOGO_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[BaseException] = None,
        suggestions: Optional[List[str]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.suggestions = suggestions or []
        if status_code is not None:
            self.status_code = status_code
        self.timestamp = datetime.now(timezone.utc)

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logs and CLI output."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)


class ConfigurationError(LogeTogoError):
    """Missing or invalid configuration; fatal at startup."""

    error_code = "CONFIG_ERROR"
    default_severity = ErrorSeverity.CRITICAL


class ConnectivityError(LogeTogoError):
    """The database could not be reached."""

    error_code = "CONNECTIVITY_ERROR"
    status_code = 503
    default_severity = ErrorSeverity.CRITICAL


class PersistenceError(LogeTogoError):
    """A store operation failed (constraint violation, driver error)."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, entity: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.entity = entity


class LifecycleError(LogeTogoError):
    """Illegal server phase transition."""

    error_code = "LIFECYCLE_ERROR"
    default_severity = ErrorSeverity.CRITICAL


class StartupError(LogeTogoError):
    """A component failed to start; the server never becomes ready."""

    error_code = "STARTUP_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, component: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.component = component
