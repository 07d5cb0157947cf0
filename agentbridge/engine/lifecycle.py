"""Session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    SPAWNING ──> RUNNING ──> FINALIZING ──> DONE
        │                        ^
        └────────────────────────┘  (spawn failure)
"""
from __future__ import annotations

from .models import SessionPhase

VALID_TRANSITIONS: dict[SessionPhase, set[SessionPhase]] = {
    SessionPhase.SPAWNING: {
        SessionPhase.RUNNING,
        SessionPhase.FINALIZING,
    },
    SessionPhase.RUNNING: {
        SessionPhase.FINALIZING,
    },
    SessionPhase.FINALIZING: {
        SessionPhase.DONE,
    },
    SessionPhase.DONE: set(),
}


def validate_transition(current: SessionPhase, target: SessionPhase) -> None:
    """Validate a phase transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid phase transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )
