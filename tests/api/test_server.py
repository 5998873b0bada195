"""
Tests for api/server.py - Lifecycle controller.

Covers:
- Startup through the FastAPI lifespan
- Startup failure: reverse teardown, STOPPED phase, remediation hints
- Readiness probe failure
- Shutdown ordering
- serve() exit codes with stand-in listeners
"""
import asyncio
import os
import signal
import sys

import pytest
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from api.components import PersistenceComponent
from api.server import LifecycleController
from core.context import ServerContext
from core.errors import StartupError
from core.lifecycle import Component, ServerPhase, ServerState
from db.client import DatabaseClient


class Recorder(Component):
    """Component that records its hooks into a shared journal."""

    def __init__(self, name, journal, fail_on_startup=False):
        self.name = name
        self.journal = journal
        self.fail_on_startup = fail_on_startup

    async def startup(self, context):
        if self.fail_on_startup:
            raise RuntimeError(f"{self.name} exploded")
        self.journal.append(("startup", self.name))

    async def shutdown(self, context):
        self.journal.append(("shutdown", self.name))


class StandInServer:
    """Listener stand-in honouring should_exit like uvicorn.Server."""

    def __init__(self, config, start=True, ignore_exit=False):
        self.config = config
        self.start = start
        self.ignore_exit = ignore_exit
        self.started = False
        self.should_exit = False
        self.force_exit = False

    async def serve(self):
        if not self.start:
            return
        self.started = True
        while self.ignore_exit or not self.should_exit:
            await asyncio.sleep(0.01)


@pytest.fixture
def context(make_config, database_url):
    config = make_config(shutdown_deadline_seconds=0.2)
    return ServerContext(
        config=config,
        state=ServerState(address=config.server.address),
        database=DatabaseClient(database_url),
    )


def controller_for(context, components):
    return LifecycleController(context.config.server, context.state, components=components)


async def wait_until_started(server_holder):
    for _ in range(200):
        if server_holder and server_holder[0].started:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("stand-in server never started")


# =============================================================================
# Lifespan
# =============================================================================

class TestLifespan:
    """Tests for startup and shutdown through the application lifespan."""

    def test_ready_after_startup_and_stopped_after_shutdown(self, app):
        state = app.state.context.state
        assert state.phase is ServerPhase.INITIALIZING

        with TestClient(app):
            assert state.phase is ServerPhase.READY
            assert state.components == ["security", "persistence", "documentation", "routes"]
            assert app.state.context.database.is_connected

        assert state.phase is ServerPhase.STOPPED
        assert not app.state.context.database.is_connected

    def test_unreachable_database_fails_startup(self, make_app, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}"
        app = make_app(url=url)

        with capture_logs() as logs:
            with pytest.raises(StartupError):
                with TestClient(app):
                    pass

        assert app.state.context.state.phase is ServerPhase.STOPPED
        failure = next(e for e in logs if e["event"] == "Server startup failed")
        assert failure["component"] == "persistence"
        assert any("port 3001" in hint for hint in failure["hints"])
        assert any("DATABASE_URL" in hint for hint in failure["hints"])


# =============================================================================
# Startup and shutdown
# =============================================================================

class TestStartup:
    """Tests for LifecycleController.startup."""

    @pytest.mark.asyncio
    async def test_failure_tears_down_started_components_in_reverse(self, context):
        journal = []
        controller = controller_for(context, [
            PersistenceComponent(),
            Recorder("first", journal),
            Recorder("second", journal),
            Recorder("broken", journal, fail_on_startup=True),
        ])

        with pytest.raises(StartupError) as exc_info:
            await controller.startup(context)

        assert exc_info.value.component == "broken"
        assert journal == [
            ("startup", "first"),
            ("startup", "second"),
            ("shutdown", "second"),
            ("shutdown", "first"),
        ]
        assert context.state.phase is ServerPhase.STOPPED
        assert not context.database.is_connected

    @pytest.mark.asyncio
    async def test_readiness_probe_gates_ready_phase(self, context):
        # No persistence component: the engine never initializes
        controller = controller_for(context, [])

        with pytest.raises(StartupError) as exc_info:
            await controller.startup(context)

        assert exc_info.value.component == "readiness"
        assert context.state.phase is ServerPhase.STOPPED

    @pytest.mark.asyncio
    async def test_shutdown_reverses_startup_order(self, context):
        journal = []
        controller = controller_for(context, [
            PersistenceComponent(),
            Recorder("a", journal),
            Recorder("b", journal),
        ])

        await controller.startup(context)
        assert context.state.phase is ServerPhase.READY
        await controller.shutdown(context)

        assert journal[-2:] == [("shutdown", "b"), ("shutdown", "a")]
        assert context.state.phase is ServerPhase.STOPPED
        assert not context.database.is_connected

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, context):
        controller = controller_for(context, [PersistenceComponent()])
        await controller.startup(context)
        await controller.shutdown(context)
        await controller.shutdown(context)
        assert context.state.phase is ServerPhase.STOPPED


# =============================================================================
# Serving
# =============================================================================

class TestServe:
    """Tests for LifecycleController.serve exit codes."""

    @pytest.mark.asyncio
    async def test_clean_shutdown_exits_zero(self, context, app):
        controller = controller_for(context, [])
        servers = []

        def factory(config):
            servers.append(StandInServer(config))
            return servers[0]

        task = asyncio.ensure_future(controller.serve(app, server_factory=factory))
        await wait_until_started(servers)
        controller.request_shutdown("test")

        assert await task == 0
        assert servers[0].should_exit
        assert context.state.phase is ServerPhase.SHUTTING_DOWN

    @pytest.mark.asyncio
    async def test_drain_deadline_overrun_exits_one(self, context, app):
        controller = controller_for(context, [])
        servers = []

        def factory(config):
            servers.append(StandInServer(config, ignore_exit=True))
            return servers[0]

        with capture_logs() as logs:
            task = asyncio.ensure_future(controller.serve(app, server_factory=factory))
            await wait_until_started(servers)
            controller.request_shutdown("test")
            assert await task == 1

        assert servers[0].force_exit
        assert any(e["event"] == "Shutdown deadline exceeded" for e in logs)

    @pytest.mark.asyncio
    async def test_listener_that_never_starts_exits_one(self, context, app):
        controller = controller_for(context, [])
        exit_code = await controller.serve(
            app, server_factory=lambda config: StandInServer(config, start=False)
        )
        assert exit_code == 1

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    async def test_sigterm_requests_shutdown(self, context, app):
        controller = controller_for(context, [])
        servers = []

        def factory(config):
            servers.append(StandInServer(config))
            return servers[0]

        task = asyncio.ensure_future(controller.serve(app, server_factory=factory))
        await wait_until_started(servers)
        os.kill(os.getpid(), signal.SIGTERM)

        assert await asyncio.wait_for(task, timeout=5) == 0
        assert context.state.phase is ServerPhase.SHUTTING_DOWN

    def test_uvicorn_config(self, context, app):
        controller = controller_for(context, [])
        config = controller._uvicorn_config(app)
        assert config.port == 3001
        assert config.lifespan == "on"
        assert config.server_header is False
