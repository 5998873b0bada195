"""
LogeTogo API - FastAPI Application

Application factory and process entry point.

create_app() resolves the configuration, builds the ServerContext and
lets the LifecycleController compose the boot sequence; the FastAPI
lifespan drives the controller's startup and shutdown. run() serves the
application and returns the process exit code.
"""
from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from api.server import LifecycleController
from config import AppConfig, DeploymentMode, get_config
from core.context import ServerContext
from core.errors import ConfigurationError
from core.lifecycle import ServerState
from db.client import DatabaseClient
from observability import get_logger, setup_observability, shutdown_observability

logger = get_logger("logetogo.api.main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the boot sequence's startup hooks, then tear down on exit."""
    controller: LifecycleController = app.state.lifecycle
    context: ServerContext = app.state.context

    await controller.startup(context)
    try:
        yield
    finally:
        await controller.shutdown(context)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create and compose the FastAPI application.

    Raises:
        ConfigurationError: if the configuration is invalid for its mode.
    """
    config = config or get_config()
    setup_observability(config.mode, version=config.version)

    for warning in config.validate():
        logger.warning("Configuration warning", detail=warning, mode=config.mode.value)

    state = ServerState(address=config.server.address)
    context = ServerContext(
        config=config,
        state=state,
        database=DatabaseClient.from_config(config.database),
    )
    controller = LifecycleController(config.server, state)

    app = FastAPI(
        title=config.name,
        description=config.description,
        version=config.version,
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.context = context
    app.state.lifecycle = controller

    controller.compose(app, context)
    return app


def run(config: Optional[AppConfig] = None) -> int:
    """Serve the application until shutdown; returns the exit code."""
    try:
        config = config or get_config()
        app = create_app(config)
    except ConfigurationError as e:
        setup_observability(config.mode if config else DeploymentMode.DEVELOPMENT)
        logger.error("Invalid configuration", **e.to_dict())
        return 1

    controller: LifecycleController = app.state.lifecycle
    try:
        return asyncio.run(controller.serve(app))
    except SystemExit as e:
        # uvicorn exits the process when the listener cannot bind
        logger.error(
            "Listener failed to start",
            address=config.server.address,
            exit_status=e.code,
            hints=[f"Check that port {config.server.port} is not already in use"],
        )
        return 1
    except KeyboardInterrupt:
        return 0
    finally:
        shutdown_observability()


if __name__ == "__main__":
    sys.exit(run())
