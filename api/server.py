"""
LogeTogo API - Server Lifecycle Controller

Owns the ServerState and drives the boot sequence:

    compose()   install components, error handlers and request context
    startup()   component startup hooks, readiness probe, phase READY
    serve()     uvicorn listener, signal handling, bounded drain
    shutdown()  reverse-order teardown, phase STOPPED

Exit codes returned by serve():
    0   clean shutdown
    1   startup failure, bind failure or drain deadline overrun
"""
from __future__ import annotations

import asyncio
import signal
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Sequence

import uvicorn
from opentelemetry import trace

from api.components import build_boot_sequence
from api.errors import ErrorBoundaryMiddleware, install_error_handlers
from api.middleware import RequestContextMiddleware
from core.errors import LogeTogoError, StartupError
from core.lifecycle import Component, LifecycleEvent, ServerPhase, ServerState
from observability import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from config import ServerConfig
    from core.context import ServerContext

logger = get_logger("logetogo.api.server")
tracer = trace.get_tracer(__name__)

SHUTDOWN_SIGNALS = tuple(
    sig for sig in (
        signal.SIGINT,
        signal.SIGTERM,
        getattr(signal, "SIGHUP", None),
    ) if sig is not None
)

STARTUP_HINTS = (
    "Check that port {port} is not already in use",
    "Check that the database server is up and DATABASE_URL points at it",
    "Check that dependencies are installed: pip install -e .",
)


class ManagedServer(uvicorn.Server):
    """uvicorn server whose signals are owned by the lifecycle controller."""

    def install_signal_handlers(self) -> None:
        pass

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class LifecycleController:
    """
    Composes the application and runs it through its lifecycle phases.

    Example:
        >>> controller = LifecycleController(config.server, ServerState(config.server.address))
        >>> controller.compose(app, context)
        >>> exit_code = await controller.serve(app)
    """

    def __init__(
        self,
        config: "ServerConfig",
        state: ServerState,
        components: Optional[Sequence[Component]] = None,
    ):
        self.config = config
        self.state = state
        self.components = tuple(components) if components is not None else build_boot_sequence()
        self.shutdown_deadline = config.shutdown_deadline_seconds

        self._started: List[Component] = []
        self._context: Optional["ServerContext"] = None
        self._server: Optional[Any] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._startup_failed = False

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def compose(self, app: "FastAPI", context: "ServerContext") -> None:
        """Install every component, then the global handlers and request context."""
        self._context = context
        # Added first so it sits innermost
        app.add_middleware(ErrorBoundaryMiddleware)
        for component in self.components:
            component.install(app, context)
            logger.debug("Component installed", component=component.name)

        install_error_handlers(app)
        app.add_middleware(
            RequestContextMiddleware,
            state=self.state,
            log_requests=context.mode.is_development,
        )
        logger.info(
            "Application composed",
            components=[c.name for c in self.components],
            mode=context.mode.value,
        )

    # -------------------------------------------------------------------------
    # Startup and shutdown
    # -------------------------------------------------------------------------

    async def startup(self, context: "ServerContext") -> None:
        """
        Start components in sequence order, probe readiness and become READY.

        Raises:
            StartupError: after tearing down whatever had already started.
        """
        with tracer.start_as_current_span("lifecycle.startup") as span:
            for component in self.components:
                start = time.perf_counter()
                try:
                    await component.startup(context)
                except Exception as e:
                    self.state.record(
                        LifecycleEvent.failure_event(self.state.phase, component.name, e)
                    )
                    span.record_exception(e)
                    await self._abort(context, component.name, component.remediation, e)
                    raise StartupError(
                        f"Component {component.name!r} failed to start: {e}",
                        component=component.name,
                        cause=e,
                        suggestions=list(component.remediation),
                    ) from e

                self._started.append(component)
                self.state.components.append(component.name)
                duration_ms = (time.perf_counter() - start) * 1000
                self.state.record(
                    LifecycleEvent.success_event(self.state.phase, component.name, duration_ms)
                )
                logger.info(
                    "Component started",
                    component=component.name,
                    duration_ms=round(duration_ms, 2),
                )

            try:
                latency_ms = await context.database.ping()
            except LogeTogoError as e:
                self.state.record(LifecycleEvent.failure_event(self.state.phase, "readiness", e))
                await self._abort(context, "readiness", tuple(e.suggestions), e)
                raise StartupError(
                    f"Readiness probe failed: {e.message}",
                    component="readiness",
                    cause=e,
                    suggestions=e.suggestions,
                ) from e

            # A shutdown signal may have arrived while components were starting
            if self.state.phase is ServerPhase.INITIALIZING:
                self.state.transition(ServerPhase.READY)
            span.set_attribute("lifecycle.components", len(self._started))

        logger.info(
            "Server ready",
            address=self.state.address,
            components=list(self.state.components),
            readiness_ms=round(latency_ms, 2),
            mode=context.mode.value,
        )

    async def shutdown(self, context: "ServerContext") -> None:
        """Tear down started components in reverse order and become STOPPED."""
        if self.state.phase is ServerPhase.STOPPED:
            return
        if self.state.phase is ServerPhase.READY:
            self.state.transition(ServerPhase.SHUTTING_DOWN)

        logger.info(
            "Shutting down",
            active_connections=self.state.active_connections,
            uptime_seconds=round(self.state.uptime_seconds, 1),
        )
        with tracer.start_as_current_span("lifecycle.shutdown"):
            await self._teardown(context)
        self.state.transition(ServerPhase.STOPPED)
        logger.info("Server stopped")

    async def _teardown(self, context: "ServerContext") -> None:
        while self._started:
            component = self._started.pop()
            try:
                await component.shutdown(context)
                self.state.record(LifecycleEvent.success_event(self.state.phase, component.name))
                logger.info("Component stopped", component=component.name)
            except Exception as e:
                self.state.record(
                    LifecycleEvent.failure_event(self.state.phase, component.name, e)
                )
                logger.error("Component shutdown failed", component=component.name, error=str(e))

    async def _abort(
        self,
        context: "ServerContext",
        failed: str,
        remediation: Sequence[str],
        error: BaseException,
    ) -> None:
        self._startup_failed = True
        await self._teardown(context)
        if self.state.phase is not ServerPhase.STOPPED:
            self.state.transition(ServerPhase.STOPPED)

        hints = list(remediation) + [hint.format(port=self.config.port) for hint in STARTUP_HINTS]
        logger.error(
            "Server startup failed",
            component=failed,
            error=str(error),
            hints=hints,
        )

    # -------------------------------------------------------------------------
    # Serving
    # -------------------------------------------------------------------------

    def request_shutdown(self, reason: str = "signal") -> None:
        """Move to SHUTTING_DOWN and wake the serve loop."""
        if self.state.phase in (ServerPhase.INITIALIZING, ServerPhase.READY):
            self.state.transition(ServerPhase.SHUTTING_DOWN)
            logger.info(
                "Shutdown requested",
                reason=reason,
                active_connections=self.state.active_connections,
            )
        elif self._server is not None:
            logger.warning("Shutdown requested again, forcing exit", reason=reason)
            self._server.force_exit = True

        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> List[int]:
        installed = []
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler unavailable", signal=sig.name)
                continue
            installed.append(sig)
        return installed

    def _uvicorn_config(self, app: "FastAPI") -> uvicorn.Config:
        return uvicorn.Config(
            app,
            host=self.config.host,
            port=self.config.port,
            lifespan="on",
            log_config=None,
            server_header=False,
            access_log=False,
        )

    async def serve(
        self,
        app: "FastAPI",
        server_factory: Optional[Callable[[uvicorn.Config], Any]] = None,
    ) -> int:
        """
        Run the listener until it stops or a shutdown signal arrives.

        Returns:
            The process exit code.
        """
        server = (server_factory or ManagedServer)(self._uvicorn_config(app))
        self._server = server
        self._shutdown_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        logger.info("Starting listener", address=self.state.address)
        serve_task = asyncio.ensure_future(server.serve())
        stop_task = asyncio.ensure_future(self._shutdown_event.wait())

        try:
            done, _ = await asyncio.wait(
                {serve_task, stop_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if serve_task in done:
                serve_task.result()
                if self._startup_failed or not server.started:
                    logger.error("Listener exited before becoming ready")
                    return 1
                return 0

            server.should_exit = True
            try:
                await asyncio.wait_for(asyncio.shield(serve_task), timeout=self.shutdown_deadline)
            except asyncio.TimeoutError:
                logger.error(
                    "Shutdown deadline exceeded",
                    deadline_seconds=self.shutdown_deadline,
                    active_connections=self.state.active_connections,
                )
                server.force_exit = True
                serve_task.cancel()
                await asyncio.gather(serve_task, return_exceptions=True)
                if self._context is not None:
                    await self.shutdown(self._context)
                return 1

            return 1 if self._startup_failed else 0
        finally:
            stop_task.cancel()
            for sig in installed:
                loop.remove_signal_handler(sig)
            self._shutdown_event = None
            self._server = None
