"""Reprompt controller state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    WAITING_FOR_IDLE ──(idle)──> EVALUATING ──┬──> STOPPED
            ^                                 │
            │                                 └──> CONTINUED
            │                                          │
            └──────(assistant message)─────────────────┘

    STOPPED / CONTINUED ──(idle)──> EVALUATING
"""
from __future__ import annotations

from .models import RepromptPhase

VALID_TRANSITIONS: dict[RepromptPhase, set[RepromptPhase]] = {
    RepromptPhase.WAITING_FOR_IDLE: {
        RepromptPhase.EVALUATING,
    },
    RepromptPhase.EVALUATING: {
        RepromptPhase.STOPPED,
        RepromptPhase.CONTINUED,
    },
    RepromptPhase.STOPPED: {
        RepromptPhase.EVALUATING,
        RepromptPhase.WAITING_FOR_IDLE,
    },
    RepromptPhase.CONTINUED: {
        RepromptPhase.EVALUATING,
        RepromptPhase.WAITING_FOR_IDLE,
    },
}


def validate_transition(current: RepromptPhase, target: RepromptPhase) -> None:
    """Validate a phase transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(sorted(s.value for s in allowed)) or "none"
        raise ValueError(
            f"Invalid reprompt transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )
