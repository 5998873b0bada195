"""
LogeTogo API - Server Lifecycle Primitives

Phase state machine, lifecycle event records and the component contract
used by the server's boot sequence.

Architecture:
    BOOT_SEQUENCE (static tuple) → validate_sequence → LifecycleController

The sequence is an explicit ordered list; each component names the
component types it requires and validate_sequence() rejects any list in
which a requirement is missing or registered after its dependent.

Phases:
    INITIALIZING → READY → SHUTTING_DOWN → STOPPED
    INITIALIZING → STOPPED            (startup failure)
    INITIALIZING → SHUTTING_DOWN      (signal during startup)
"""
from __future__ import annotations

import time
from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Type
from uuid import UUID, uuid4

from core.errors import ConfigurationError, LifecycleError

if TYPE_CHECKING:
    from core.context import ServerContext


# =============================================================================
# PHASES AND STATE
# =============================================================================


class ServerPhase(Enum):
    """Server lifecycle phases; STOPPED is terminal."""
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


ALLOWED_TRANSITIONS: Dict[ServerPhase, FrozenSet[ServerPhase]] = {
    ServerPhase.INITIALIZING: frozenset({
        ServerPhase.READY,
        ServerPhase.SHUTTING_DOWN,
        ServerPhase.STOPPED,
    }),
    ServerPhase.READY: frozenset({ServerPhase.SHUTTING_DOWN}),
    ServerPhase.SHUTTING_DOWN: frozenset({ServerPhase.STOPPED}),
    ServerPhase.STOPPED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """Immutable record of a phase transition or component step."""
    event_id: UUID
    timestamp: float
    phase: ServerPhase
    component: str
    success: bool
    duration_ms: float = 0.0
    error: Optional[str] = None

    @classmethod
    def success_event(
        cls,
        phase: ServerPhase,
        component: str,
        duration_ms: float = 0.0,
    ) -> "LifecycleEvent":
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            phase=phase,
            component=component,
            success=True,
            duration_ms=duration_ms,
        )

    @classmethod
    def failure_event(
        cls,
        phase: ServerPhase,
        component: str,
        error: BaseException,
    ) -> "LifecycleEvent":
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            phase=phase,
            component=component,
            success=False,
            error=f"{type(error).__name__}: {error}",
        )


@dataclass
class ServerState:
    """
    Process-wide server state.

    One instance per running process. The phase is mutated only by the
    lifecycle controller through transition(); the request-context
    middleware maintains active_connections.
    """
    address: str
    phase: ServerPhase = ServerPhase.INITIALIZING
    components: List[str] = field(default_factory=list)
    active_connections: int = 0
    started_at: float = field(default_factory=time.time)
    events: List[LifecycleEvent] = field(default_factory=list)

    def transition(self, target: ServerPhase) -> None:
        """
        Move to a new phase.

        Raises:
            LifecycleError: if the transition is not allowed from the current phase.
        """
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise LifecycleError(
                f"Illegal lifecycle transition {self.phase.value} -> {target.value}"
            )
        self.phase = target
        self.events.append(LifecycleEvent.success_event(target, "server"))

    def record(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    @property
    def is_ready(self) -> bool:
        return self.phase is ServerPhase.READY

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "phase": self.phase.value,
            "components": list(self.components),
            "active_connections": self.active_connections,
            "uptime_seconds": round(self.uptime_seconds, 3),
        }


# =============================================================================
# COMPONENTS
# =============================================================================


class Component(ABC):
    """
    Base class for boot-sequence components with no-op defaults.

    install() runs synchronously while the HTTP application is composed
    (middleware, routes, docs). startup() and shutdown() run inside the
    server lifespan; shutdown() runs in reverse sequence order.
    """

    name: str = "component"
    requires: Tuple[Type["Component"], ...] = ()
    # Logged when startup() fails
    remediation: Tuple[str, ...] = ()

    def install(self, app: Any, context: "ServerContext") -> None:
        """Override to register middleware or routes on the application."""

    async def startup(self, context: "ServerContext") -> None:
        """Override to acquire resources."""

    async def shutdown(self, context: "ServerContext") -> None:
        """Override to release resources."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


def validate_sequence(components: Sequence[Component]) -> Tuple[Component, ...]:
    """
    Check that every component's requirements are registered before it.

    Returns:
        The sequence as a tuple, unchanged.

    Raises:
        ConfigurationError: on a duplicate, missing or misordered requirement.
    """
    seen: List[Component] = []
    names = set()
    for component in components:
        if component.name in names:
            raise ConfigurationError(f"Component {component.name!r} registered twice")
        for required in component.requires:
            if not any(isinstance(earlier, required) for earlier in seen):
                later = any(isinstance(other, required) for other in components)
                where = "before it" if later else "at all"
                raise ConfigurationError(
                    f"Component {component.name!r} requires {required.__name__}, "
                    f"which is not registered {where}"
                )
        seen.append(component)
        names.add(component.name)
    return tuple(seen)
