"""
LogeTogo API - Server Context

The dependency struct handed to every component and request handler.
The lifecycle controller owns it; components and handlers borrow it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from core.lifecycle import ServerState

if TYPE_CHECKING:
    from api.security.auth import Authenticator
    from api.security.rate_limit import RateLimiter
    from config import AppConfig, DeploymentMode
    from db.client import DatabaseClient


@dataclass
class ServerContext:
    """Capabilities shared by components; populated during install()."""

    config: "AppConfig"
    state: ServerState
    database: "DatabaseClient"
    authenticator: Optional["Authenticator"] = None
    rate_limiter: Optional["RateLimiter"] = None

    @property
    def mode(self) -> "DeploymentMode":
        return self.config.mode

    def require_authenticator(self) -> "Authenticator":
        if self.authenticator is None:
            raise RuntimeError("Security stack has not been installed")
        return self.authenticator
