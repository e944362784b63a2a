"""Blocker intake: the ``blocker`` tool the agent calls to log a question.

Arguments arrive from the model and are untrusted, so they are parsed
into a BlockerReport before anything else looks at them. Recording a
blocker deduplicates it, enforces the per-run cap, and appends it to
the blockers file. A failed write queues the blocker on the session
and the queue is retried on the next intake.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ..adapters.blockers_file import append_blocker
from .config import DiverterConfig
from .dedupe import add_to_cooldown, blocker_hash, is_in_cooldown, prune_expired
from .errors import InvalidBlockerError
from .models import Blocker, BlockerCategory, SessionState, now_ms
from .templates import BLOCKER_RESPONSE_MESSAGE, DISABLED_RESPONSE_MESSAGE

logger = logging.getLogger(__name__)

TOOL_NAME = "blocker"

TOOL_DESCRIPTION = (
    "Log a blocker question to the blockers file and continue with "
    "independent tasks. Use for hard blockers (architecture, security, "
    "destructive, deployment decisions) or soft blockers with researched "
    "options. Returns a confirmation message."
)

# camelCase names the host schema uses -> BlockerReport fields
_ARG_ALIASES = {
    "blocksProgress": "blocks_progress",
    "chosenOption": "chosen_option",
    "chosenReasoning": "chosen_reasoning",
}


class IntakeOutcome(str, Enum):
    RECORDED = "recorded"
    QUEUED = "queued"
    DUPLICATE = "duplicate"
    CAP_REACHED = "cap_reached"
    DISABLED = "disabled"


@dataclass(frozen=True)
class IntakeResult:
    """Reply for the agent plus what happened to the report."""
    reply: str
    outcome: IntakeOutcome
    blocker: Blocker | None = None


def _optional_str(args: dict[str, Any], name: str) -> str | None:
    value = args.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidBlockerError(f"{name} must be a string")
    return value


@dataclass(frozen=True)
class BlockerReport:
    """Validated arguments of one blocker tool call."""
    question: str
    category: BlockerCategory
    context: str = ""
    blocks_progress: bool = True
    options: tuple[str, ...] | None = None
    chosen_option: str | None = None
    chosen_reasoning: str | None = None

    @classmethod
    def from_args(cls, raw: Any) -> BlockerReport:
        """Validate raw tool arguments. Raises InvalidBlockerError."""
        if not isinstance(raw, dict):
            raise InvalidBlockerError("arguments must be an object")
        args = {_ARG_ALIASES.get(k, k): v for k, v in raw.items()}

        question = args.get("question")
        if not isinstance(question, str) or not question.strip():
            raise InvalidBlockerError("Question cannot be empty")

        try:
            category = BlockerCategory(args.get("category"))
        except ValueError:
            raise InvalidBlockerError(
                f"category must be one of {', '.join(BlockerCategory.values())}"
            ) from None

        context = args.get("context")
        if context is None:
            context = ""
        elif not isinstance(context, str):
            raise InvalidBlockerError("context must be a string")

        blocks_progress = args.get("blocks_progress", True)
        if blocks_progress is None:
            blocks_progress = True
        if not isinstance(blocks_progress, bool):
            raise InvalidBlockerError("blocksProgress must be a boolean")

        options = args.get("options")
        if options is not None:
            if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
                raise InvalidBlockerError("options must be a list of strings")
            options = tuple(options)

        chosen_option = _optional_str(args, "chosen_option")
        chosen_reasoning = _optional_str(args, "chosen_reasoning")

        if not blocks_progress and not options:
            raise InvalidBlockerError(
                "Soft blockers (blocksProgress=false) must include options array"
            )
        if chosen_option and options and chosen_option not in options:
            raise InvalidBlockerError("chosenOption must be one of the options")

        return cls(
            question=question,
            category=category,
            context=context,
            blocks_progress=blocks_progress,
            options=options,
            chosen_option=chosen_option,
            chosen_reasoning=chosen_reasoning,
        )


def blocker_tool_schema() -> dict[str, Any]:
    """Definition a host registers for the blocker tool."""
    return {
        "name": TOOL_NAME,
        "description": TOOL_DESCRIPTION,
        "parameters": {
            "type": "object",
            "properties": {
                "question": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The exact blocking question you need answered",
                },
                "category": {
                    "type": "string",
                    "enum": BlockerCategory.values(),
                    "description": "Category of the blocker",
                },
                "context": {
                    "type": "string",
                    "default": "",
                    "description": (
                        "Structured context: task reference, what you were "
                        "doing, where you got stuck (files with line numbers, "
                        "commands) and progress made before the blocker."
                    ),
                },
                "blocksProgress": {
                    "type": "boolean",
                    "default": True,
                    "description": (
                        "True if this completely halts progress (hard blocker), "
                        "false if you can make a default choice (soft blocker)"
                    ),
                },
                "options": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "For soft blockers: the choices you researched",
                },
                "chosenOption": {
                    "type": "string",
                    "description": "For soft blockers: the option you chose (must be in options)",
                },
                "chosenReasoning": {
                    "type": "string",
                    "description": "For soft blockers: why you chose this option",
                },
            },
            "required": ["question", "category"],
        },
    }


def _iso_from_ms(ms: float) -> str:
    stamp = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BlockerIntake:
    """Records blockers for sessions of one project."""

    def __init__(
        self,
        config: DiverterConfig,
        project_dir: str | Path,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._config = config
        self._project_dir = Path(project_dir)
        self._clock = clock

    def _at_capacity(self, state: SessionState) -> bool:
        held = len(state.blockers) + len(state.pending_writes)
        return held >= self._config.max_blockers_per_run

    def _commit(self, state: SessionState, blocker: Blocker, now: float) -> None:
        state.blockers.append(blocker)
        add_to_cooldown(
            blocker_hash(blocker.question, blocker.context),
            state, self._config.cooldown_ms, now,
        )
        state.last_blocker_time = now

    def flush_pending(self, state: SessionState) -> int:
        """Retry queued writes in order. Returns how many were written."""
        written = 0
        while state.pending_writes:
            blocker = state.pending_writes[0]
            if not append_blocker(self._config.blockers_file, blocker, self._project_dir):
                break
            state.pending_writes.pop(0)
            self._commit(state, blocker, self._clock())
            written += 1
        if written:
            logger.info(
                "Flushed %d queued blocker(s), %d still pending",
                written, len(state.pending_writes),
            )
        return written

    def record(
        self, state: SessionState, session_id: str, report: BlockerReport,
    ) -> tuple[IntakeOutcome, Blocker | None]:
        """Dedupe, cap and persist one report.

        Does not look at the session's diversion toggle; callers that
        care check it first.
        """
        now = self._clock()
        prune_expired(state, now)
        if state.pending_writes:
            self.flush_pending(state)

        digest = blocker_hash(report.question, report.context)
        if is_in_cooldown(digest, state, now):
            logger.info("Duplicate blocker skipped (cooldown): %s", report.question)
            return IntakeOutcome.DUPLICATE, None

        if self._at_capacity(state):
            logger.info(
                "Max blockers reached (%d/%d) for session %s",
                len(state.blockers), self._config.max_blockers_per_run, session_id,
            )
            return IntakeOutcome.CAP_REACHED, None

        blocker = Blocker(
            id=f"{int(now)}-{session_id}-{digest[:6]}",
            timestamp=_iso_from_ms(now),
            session_id=session_id,
            category=report.category,
            question=report.question,
            context=report.context,
            blocks_progress=report.blocks_progress,
            options=report.options,
            chosen_option=report.chosen_option,
            chosen_reasoning=report.chosen_reasoning,
        )

        if append_blocker(self._config.blockers_file, blocker, self._project_dir):
            self._commit(state, blocker, now)
            logger.info("Blocker logged: %s (%s)", blocker.question, blocker.id)
            return IntakeOutcome.RECORDED, blocker

        state.pending_writes.append(blocker)
        logger.error(
            "Failed to log blocker %s to file, queued for retry (queue length %d)",
            blocker.id, len(state.pending_writes),
        )
        return IntakeOutcome.QUEUED, blocker

    def report(
        self, state: SessionState, session_id: str, report: BlockerReport,
    ) -> IntakeResult:
        """Handle a blocker tool call.

        The reply is the fixed acknowledgement whatever happened to the
        report, so the agent never retries or waits on it.
        """
        if not (state.enabled and state.divert_blockers):
            return IntakeResult(DISABLED_RESPONSE_MESSAGE, IntakeOutcome.DISABLED)
        outcome, blocker = self.record(state, session_id, report)
        return IntakeResult(BLOCKER_RESPONSE_MESSAGE, outcome, blocker)
