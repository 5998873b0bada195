"""
LogeTogo API - Observability Package

Structured logging and tracing for the API server.

Components:
- logging: Structlog integration with trace context propagation
- tracing: OpenTelemetry tracer provider setup

Usage:
    from observability import setup_observability, get_logger

    setup_observability(DeploymentMode.DEVELOPMENT, version="1.0.0")
    logger = get_logger(__name__)
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from .logging import (
    LogContext,
    LoggingConfig,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    shutdown_logging,
    unbind_context,
)
from .tracing import (
    TracingConfig,
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)

if TYPE_CHECKING:
    from config import DeploymentMode


def setup_observability(mode: "DeploymentMode", version: str = "1.0.0") -> None:
    """Initialize logging and tracing for the given deployment mode."""
    setup_logging(LoggingConfig.for_mode(mode))
    setup_tracing(TracingConfig(service_version=version, environment=mode.value))


def shutdown_observability() -> None:
    """Flush tracing and logging."""
    shutdown_tracing()
    shutdown_logging()


__all__ = [
    # Setup
    "setup_observability",
    "shutdown_observability",
    # Logging
    "LoggingConfig",
    "LogContext",
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    # Tracing
    "TracingConfig",
    "setup_tracing",
    "shutdown_tracing",
    "get_tracer",
    "create_span",
]
