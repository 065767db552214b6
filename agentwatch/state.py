"""
Agentwatch - Pipeline State Machine

Tracks the lifecycle of a running pipeline so start/stop happen exactly
once and in order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any

from agentwatch.exceptions import StateTransitionError


class PipelineState(Enum):
    """
    Possible states for a pipeline.

    State transitions:
    INITIALIZING -> RUNNING (store, watcher and plugins up)
    INITIALIZING -> FAILED (setup error)
    RUNNING -> STOPPING (stop requested)
    STOPPING -> STOPPED (all handles released)
    """

    INITIALIZING = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()  # Terminal
    FAILED = auto()  # Terminal


VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.INITIALIZING: {PipelineState.RUNNING, PipelineState.FAILED},
    PipelineState.RUNNING: {PipelineState.STOPPING, PipelineState.FAILED},
    PipelineState.STOPPING: {PipelineState.STOPPED},
    PipelineState.STOPPED: set(),
    PipelineState.FAILED: set(),
}


@dataclass
class PipelineStatus:
    """Current lifecycle state plus what went wrong, if anything."""

    state: PipelineState = PipelineState.INITIALIZING
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    last_error: str | None = None
    history_available: bool = True
    cleaned_up_tasks: int = 0
    transitions: list[tuple[PipelineState, PipelineState]] = field(default_factory=list)

    def can_transition_to(self, new_state: PipelineState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, new_state: PipelineState) -> bool:
        """
        Attempt to transition to a new state.

        Returns:
            True if transition was valid and performed, False otherwise
        """
        if not self.can_transition_to(new_state):
            return False
        self.transitions.append((self.state, new_state))
        self.state = new_state
        if new_state == PipelineState.RUNNING:
            self.started_at = datetime.now()
        elif new_state in (PipelineState.STOPPED, PipelineState.FAILED):
            self.stopped_at = datetime.now()
        return True

    def require_transition(self, new_state: PipelineState) -> None:
        """
        Transition to a new state, raising an exception if invalid.

        Raises:
            StateTransitionError: If the transition is not valid
        """
        if not self.transition_to(new_state):
            valid_targets = VALID_TRANSITIONS.get(self.state, set())
            valid_names = ", ".join(sorted(s.name for s in valid_targets)) or "none"
            raise StateTransitionError(
                f"Invalid state transition: {self.state.name} -> {new_state.name}. "
                f"Valid transitions from {self.state.name}: {valid_names}",
                from_state=self.state.name,
                to_state=new_state.name,
            )

    def fail(self, error: str) -> None:
        """Record an error and move to FAILED if still possible."""
        self.last_error = error
        self.transition_to(PipelineState.FAILED)

    @property
    def is_running(self) -> bool:
        return self.state == PipelineState.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.name,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "last_error": self.last_error,
            "history_available": self.history_available,
            "cleaned_up_tasks": self.cleaned_up_tasks,
        }
