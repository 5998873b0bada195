"""
LogeTogo API - Core Module

Framework-agnostic foundations shared by the API and persistence layers:
- Unified error hierarchy
- Server lifecycle phases and the boot-sequence component contract
- The server context passed to components and handlers
"""

from core.context import ServerContext
from core.errors import (
    ConfigurationError,
    ConnectivityError,
    ErrorContext,
    ErrorSeverity,
    LifecycleError,
    LogeTogoError,
    PersistenceError,
    StartupError,
)
from core.lifecycle import (
    Component,
    LifecycleEvent,
    ServerPhase,
    ServerState,
    validate_sequence,
)

__all__ = [
    # Errors
    "LogeTogoError",
    "ConfigurationError",
    "ConnectivityError",
    "PersistenceError",
    "LifecycleError",
    "StartupError",
    "ErrorContext",
    "ErrorSeverity",
    # Lifecycle
    "Component",
    "LifecycleEvent",
    "ServerPhase",
    "ServerState",
    "validate_sequence",
    # Context
    "ServerContext",
]
