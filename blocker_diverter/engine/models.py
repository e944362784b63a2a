"""Core data models for the session controller.

All dataclasses, enums, and type aliases. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# How many response hashes a session keeps for repeat detection.
RESPONSE_HISTORY_SIZE = 10


class BlockerCategory(str, Enum):
    """Closed set of blocker categories the agent may report."""
    PERMISSION = "permission"
    ARCHITECTURE = "architecture"
    SECURITY = "security"
    DESTRUCTIVE = "destructive"
    QUESTION = "question"
    OTHER = "other"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class RepromptPhase(str, Enum):
    """Reprompt controller states. See lifecycle.py for transition rules."""
    WAITING_FOR_IDLE = "waiting_for_idle"
    EVALUATING = "evaluating"
    STOPPED = "stopped"
    CONTINUED = "continued"


class StopReason(str, Enum):
    """Why an idle evaluation ended in STOPPED."""
    RECOVERING = "recovering"
    DISABLED = "disabled"
    COMPLETED = "completed"
    REPEATING = "repeating"
    BUDGET_EXHAUSTED = "budget_exhausted"
    INJECTION_FAILED = "injection_failed"


def now_ms() -> float:
    """Wall-clock time in milliseconds since the epoch."""
    return time.time() * 1000.0


def category_text(category: BlockerCategory | str) -> str:
    """Plain string form of a category, enum member or not."""
    if isinstance(category, BlockerCategory):
        return category.value
    return str(category)


@dataclass(frozen=True)
class Blocker:
    """One reported obstacle. Created once, never mutated.

    ``category`` is normally a BlockerCategory. Hosts can hand us
    arbitrary strings; those are kept as opaque text and sanitized
    like any other untrusted field before reaching a prompt.
    """
    id: str
    timestamp: str
    session_id: str
    category: BlockerCategory | str
    question: str
    context: str = ""
    blocks_progress: bool = True
    options: tuple[str, ...] | None = None
    chosen_option: str | None = None
    chosen_reasoning: str | None = None

    @property
    def is_soft(self) -> bool:
        return not self.blocks_progress

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "category": category_text(self.category),
            "question": self.question,
            "context": self.context,
            "blocks_progress": self.blocks_progress,
        }
        if self.options is not None:
            data["options"] = list(self.options)
        if self.chosen_option is not None:
            data["chosen_option"] = self.chosen_option
        if self.chosen_reasoning is not None:
            data["chosen_reasoning"] = self.chosen_reasoning
        return data


@dataclass
class SessionState:
    """Mutable per-session record, owned by the SessionStore."""
    enabled: bool = True
    divert_blockers: bool = True
    blockers: list[Blocker] = field(default_factory=list)
    # blocker hash -> absolute expiry (ms since epoch)
    cooldown_hashes: dict[str, float] = field(default_factory=dict)
    last_blocker_time: float = field(default_factory=now_ms)
    last_reprompt_time: float = 0.0
    reprompt_count: int = 0
    recent_response_hashes: deque[str] = field(
        default_factory=lambda: deque(maxlen=RESPONSE_HISTORY_SIZE)
    )
    last_message_content: str = ""
    # Skip one idle cycle after a session error.
    is_recovering: bool = False
    # Blockers whose file write failed; retried on the next intake.
    pending_writes: list[Blocker] = field(default_factory=list)
    phase: RepromptPhase = RepromptPhase.WAITING_FOR_IDLE


@dataclass(frozen=True)
class RepromptDecision:
    """Outcome of one idle evaluation."""
    phase: RepromptPhase
    reason: StopReason | None = None
    reprompt_count: int = 0

    @property
    def should_inject(self) -> bool:
        return self.phase == RepromptPhase.CONTINUED


@dataclass(frozen=True)
class ToolDecision:
    """Answer to a tool.execute.before hook."""
    blocked: bool
    message: str = ""
