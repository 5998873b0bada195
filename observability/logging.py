"""
LogeTogo API - Structured Logging with Trace Context

Integrates structlog with OpenTelemetry trace context propagation,
ensuring log messages carry trace_id and span_id for correlation
with traces.

Features:
- Structured JSON logging in production, console rendering in development
- Automatic trace context injection (trace_id, span_id)
- Request context enrichment via contextvars

Usage:
    from observability.logging import setup_logging, get_logger

    # Setup at startup
    setup_logging(LoggingConfig.for_mode(DeploymentMode.PRODUCTION))

    # Get logger
    logger = get_logger(__name__)
    logger.info("Route registered", method="GET", path="/health")
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

import structlog
from opentelemetry import trace
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from config import DeploymentMode

# Global state
_configured: bool = False


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    service_name: str = "logetogo-api"
    level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    json_format: bool = field(
        default_factory=lambda: os.getenv("LOG_FORMAT", "console").lower() == "json"
    )
    enable_trace_context: bool = True
    log_to_console: bool = True
    include_timestamp: bool = True
    environment: str = "development"
    # Cached loggers ignore later reconfiguration (structlog.testing.capture_logs)
    cache_loggers: bool = field(
        default_factory=lambda: os.getenv("LOG_CACHE_LOGGERS", "true").lower() != "false"
    )

    @classmethod
    def for_mode(cls, mode: "DeploymentMode") -> "LoggingConfig":
        """Production logs JSON at WARNING, other modes pretty-print at INFO."""
        if mode.is_production:
            return cls(
                level=os.getenv("LOG_LEVEL", "WARNING").upper(),
                json_format=True,
                environment=mode.value,
            )
        return cls(environment=mode.value)


def add_trace_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Structlog processor that adds OpenTelemetry trace context to log events.
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        if ctx.is_valid:
            event_dict["trace_id"] = format(ctx.trace_id, "032x")
            event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def add_service_context(
    service_name: str,
    environment: str,
) -> structlog.types.Processor:
    """
    Create a processor that adds service context to all log events.

    Args:
        service_name: Name of the service
        environment: Deployment mode
    """

    def processor(
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        event_dict["service"] = service_name
        event_dict["environment"] = environment
        return event_dict

    return processor


def add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO8601 timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure structlog with OpenTelemetry trace context integration.

    An explicit config always applies. Without one, defaults are applied
    only if nothing has been configured yet.

    Args:
        config: Logging configuration. Uses defaults if not provided.
    """
    global _configured

    if config is None:
        if _configured:
            return
        config = LoggingConfig()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context(config.service_name, config.environment),
    ]

    if config.include_timestamp:
        processors.append(add_timestamp)

    if config.enable_trace_context:
        processors.append(add_trace_context)

    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ])

    # Final rendering; tracebacks stay intact for 5xx diagnostics
    if config.json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.UnicodeDecoder())
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config.cache_loggers,
    )

    _configure_stdlib_logging(config)

    _configured = True


def _configure_stdlib_logging(config: LoggingConfig) -> None:
    """Route stdlib logging (uvicorn, sqlalchemy) through the same handler."""
    level = getattr(logging, config.level, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if config.log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        # structlog has already rendered the event
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        for handler in root_logger.handlers[:]:
            if isinstance(handler, logging.StreamHandler) and getattr(handler, "_logetogo", False):
                root_logger.removeHandler(handler)
        console_handler._logetogo = True  # type: ignore[attr-defined]
        root_logger.addHandler(console_handler)

    # Set levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("opentelemetry").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger instance.

    Args:
        name: Logger name, typically __name__

    The returned proxy binds on first use, so the configuration in effect
    at that point applies.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.warning("Route not found", method="GET", path="/nope")
    """
    return structlog.get_logger(name)


def shutdown_logging() -> None:
    """Flush handlers and allow setup_logging() to run again."""
    global _configured

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.flush()

    _configured = False


class LogContext:
    """
    Context manager for adding contextual information to all logs.

    Example:
        >>> with LogContext(component="persistence"):
        ...     logger.info("Connecting")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


def bind_context(**kwargs: Any) -> None:
    """
    Bind contextual variables to all subsequent log messages.

    Example:
        >>> bind_context(request_id="req-abc123")
        >>> logger.info("Request started")  # Includes request_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove contextual variables from log context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound contextual variables."""
    structlog.contextvars.clear_contextvars()
