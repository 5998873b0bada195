"""
Tests for core/lifecycle.py - Phase state machine and boot sequence validation.

Covers:
- Allowed and illegal phase transitions
- Lifecycle event recording
- validate_sequence() ordering rules
- The application's boot sequence
"""
import pytest

from core.errors import ConfigurationError, LifecycleError
from core.lifecycle import (
    ALLOWED_TRANSITIONS,
    Component,
    LifecycleEvent,
    ServerPhase,
    ServerState,
    validate_sequence,
)


class Persistence(Component):
    name = "persistence"


class Security(Component):
    name = "security"


class Docs(Component):
    name = "docs"
    requires = (Security,)


class Routes(Component):
    name = "routes"
    requires = (Persistence,)


# =============================================================================
# Phases
# =============================================================================

class TestServerState:
    """Tests for ServerState.transition."""

    def test_starts_initializing(self):
        state = ServerState(address="http://localhost:3001")
        assert state.phase is ServerPhase.INITIALIZING
        assert state.active_connections == 0
        assert not state.is_ready

    def test_happy_path(self):
        state = ServerState(address="http://localhost:3001")
        for phase in (ServerPhase.READY, ServerPhase.SHUTTING_DOWN, ServerPhase.STOPPED):
            state.transition(phase)
        assert state.phase is ServerPhase.STOPPED
        assert [e.phase for e in state.events] == [
            ServerPhase.READY,
            ServerPhase.SHUTTING_DOWN,
            ServerPhase.STOPPED,
        ]

    def test_startup_failure_goes_straight_to_stopped(self):
        state = ServerState(address="http://localhost:3001")
        state.transition(ServerPhase.STOPPED)
        assert state.phase is ServerPhase.STOPPED

    @pytest.mark.parametrize("source,target", [
        (ServerPhase.READY, ServerPhase.INITIALIZING),
        (ServerPhase.READY, ServerPhase.STOPPED),
        (ServerPhase.SHUTTING_DOWN, ServerPhase.READY),
        (ServerPhase.STOPPED, ServerPhase.READY),
        (ServerPhase.STOPPED, ServerPhase.INITIALIZING),
    ])
    def test_illegal_transitions(self, source, target):
        state = ServerState(address="http://localhost:3001", phase=source)
        with pytest.raises(LifecycleError):
            state.transition(target)
        assert state.phase is source

    def test_stopped_is_terminal(self):
        assert ALLOWED_TRANSITIONS[ServerPhase.STOPPED] == frozenset()

    def test_to_dict(self):
        state = ServerState(address="http://localhost:3001", components=["security"])
        summary = state.to_dict()
        assert summary["phase"] == "initializing"
        assert summary["components"] == ["security"]


class TestLifecycleEvent:
    """Tests for LifecycleEvent constructors."""

    def test_failure_event_records_error(self):
        event = LifecycleEvent.failure_event(
            ServerPhase.INITIALIZING, "persistence", ConnectionRefusedError("refused")
        )
        assert not event.success
        assert event.error == "ConnectionRefusedError: refused"

    def test_events_are_immutable(self):
        event = LifecycleEvent.success_event(ServerPhase.READY, "server")
        with pytest.raises(AttributeError):
            event.success = False


# =============================================================================
# Sequence validation
# =============================================================================

class TestValidateSequence:
    """Tests for validate_sequence."""

    def test_valid_sequence_is_returned_unchanged(self):
        components = [Security(), Persistence(), Docs(), Routes()]
        assert validate_sequence(components) == tuple(components)

    def test_requirement_registered_after_dependent(self):
        with pytest.raises(ConfigurationError, match="not registered before it"):
            validate_sequence([Docs(), Security()])

    def test_requirement_missing(self):
        with pytest.raises(ConfigurationError, match="not registered at all"):
            validate_sequence([Persistence(), Docs()])

    def test_duplicate_component(self):
        with pytest.raises(ConfigurationError, match="registered twice"):
            validate_sequence([Security(), Security()])

    def test_application_boot_sequence(self):
        from api.components import build_boot_sequence

        names = [c.name for c in build_boot_sequence()]
        assert names == ["security", "persistence", "documentation", "routes"]
