"""
LogeTogo API - Route Registrar

Composes the route groups under their fixed prefixes:

    /                 root banner and health probe
    /api/system       health probe and runtime information
    /api/test         development-only data routes
    /api/security     development-only security diagnostics
"""
from __future__ import annotations

from typing import TYPE_CHECKING, List

from api.routes.dev import security_router, test_router
from api.routes.system import root_router, system_router
from observability import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from config import DeploymentMode

logger = get_logger("logetogo.api.routes")

SYSTEM_PREFIX = "/api/system"
TEST_PREFIX = "/api/test"
SECURITY_PREFIX = "/api/security"


def register_routes(app: "FastAPI", mode: "DeploymentMode") -> List[str]:
    """
    Include the route groups allowed in this mode.

    Returns:
        The prefixes that were registered.
    """
    app.include_router(root_router)
    app.include_router(system_router, prefix=SYSTEM_PREFIX)
    registered = ["/", SYSTEM_PREFIX]

    if mode.is_development:
        app.include_router(test_router, prefix=TEST_PREFIX)
        app.include_router(security_router, prefix=SECURITY_PREFIX)
        registered.extend([TEST_PREFIX, SECURITY_PREFIX])
        logger.info("Development routes registered", prefixes=[TEST_PREFIX, SECURITY_PREFIX])

    logger.info("Routes registered", prefixes=registered, mode=mode.value)
    return registered


__all__ = [
    "register_routes",
    "SYSTEM_PREFIX",
    "TEST_PREFIX",
    "SECURITY_PREFIX",
]
