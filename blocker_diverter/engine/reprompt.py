"""Idle-time reprompt decisions for one session.

On every idle signal the controller decides whether the agent gets a
continuation prompt or is allowed to stop:

1. A session recovering from an error sits out one idle cycle.
2. A session with diversion switched off is left alone.
3. The completion marker anywhere in the last assistant message stops
   the session, whatever budget is left.
4. An agent repeating the same response is stopped.
5. Otherwise the reprompt budget decides. The budget is a fixed
   window: once ``reprompt_window_ms`` has passed since the last
   reprompt, the count resets to zero before comparing.

The state mutations for an issued reprompt happen in
``commit_reprompt`` only after the host accepted the prompt, so a
failed injection leaves the session exactly as it was.
"""
from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from typing import Any

from .config import DiverterConfig
from .dedupe import normalize_text
from .lifecycle import validate_transition
from .models import RepromptDecision, RepromptPhase, SessionState, StopReason

logger = logging.getLogger(__name__)

# Identical trailing responses that count as the agent looping.
REPEAT_THRESHOLD = 3


def extract_text(parts: Iterable[Any]) -> str:
    """Join the textual segments of a message with newlines.

    Accepts plain strings or host part dicts like
    ``{"type": "text", "text": "..."}``; tool invocations and other
    non-text segments are skipped.
    """
    texts: list[str] = []
    for part in parts or ():
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict):
            if part.get("type") == "text" and isinstance(part.get("text"), str):
                texts.append(part["text"])
    return "\n".join(texts)


def response_hash(content: str) -> str:
    return hashlib.sha256(normalize_text(content).encode("utf-8")).hexdigest()


class RepromptController:
    """Reprompt state machine over a SessionState."""

    def __init__(self, config: DiverterConfig) -> None:
        self._config = config

    @property
    def config(self) -> DiverterConfig:
        return self._config

    def _move(self, state: SessionState, target: RepromptPhase) -> None:
        validate_transition(state.phase, target)
        state.phase = target

    def capture_message(
        self, state: SessionState, parts: Iterable[Any], role: str = "assistant",
    ) -> str | None:
        """Record the latest assistant message for completion detection.

        Returns the captured text, or None when the message was ignored
        (wrong role or no text).
        """
        if role != "assistant":
            return None
        text = extract_text(parts)
        if not text:
            return None
        state.last_message_content = text
        state.recent_response_hashes.append(response_hash(text))
        if state.phase in (RepromptPhase.STOPPED, RepromptPhase.CONTINUED):
            self._move(state, RepromptPhase.WAITING_FOR_IDLE)
        return text

    def completion_detected(self, state: SessionState) -> bool:
        marker = self._config.completion_marker
        content = state.last_message_content or ""
        return bool(marker) and marker in content

    def is_repeating(self, state: SessionState) -> bool:
        history = list(state.recent_response_hashes)
        if len(history) < REPEAT_THRESHOLD:
            return False
        tail = history[-REPEAT_THRESHOLD:]
        return all(h == tail[0] for h in tail)

    def _stop(self, state: SessionState, reason: StopReason) -> RepromptDecision:
        self._move(state, RepromptPhase.STOPPED)
        return RepromptDecision(
            phase=RepromptPhase.STOPPED,
            reason=reason,
            reprompt_count=state.reprompt_count,
        )

    def evaluate(self, state: SessionState, now: float) -> RepromptDecision:
        """Run one idle evaluation.

        A STOPPED outcome is final for this cycle. A CONTINUED outcome
        leaves the session in EVALUATING until the caller reports the
        injection result via commit_reprompt() or abandon().
        """
        self._move(state, RepromptPhase.EVALUATING)

        if state.is_recovering:
            state.is_recovering = False
            return self._stop(state, StopReason.RECOVERING)

        if not (state.enabled and state.divert_blockers):
            return self._stop(state, StopReason.DISABLED)

        if self.completion_detected(state):
            return self._stop(state, StopReason.COMPLETED)

        if self.is_repeating(state):
            return self._stop(state, StopReason.REPEATING)

        if now - state.last_reprompt_time > self._config.reprompt_window_ms:
            if state.reprompt_count:
                logger.debug(
                    "Reprompt window elapsed after %.0fms, resetting count %d",
                    now - state.last_reprompt_time, state.reprompt_count,
                )
            state.reprompt_count = 0

        if state.reprompt_count >= self._config.max_reprompts:
            return self._stop(state, StopReason.BUDGET_EXHAUSTED)

        return RepromptDecision(
            phase=RepromptPhase.CONTINUED,
            reprompt_count=state.reprompt_count,
        )

    def commit_reprompt(self, state: SessionState, now: float) -> int:
        """Account for a delivered continuation prompt."""
        self._move(state, RepromptPhase.CONTINUED)
        state.reprompt_count = min(state.reprompt_count + 1, self._config.max_reprompts)
        state.last_reprompt_time = now
        return state.reprompt_count

    def abandon(self, state: SessionState) -> None:
        """The continuation prompt never reached the host; stop this cycle."""
        if state.phase == RepromptPhase.EVALUATING:
            self._move(state, RepromptPhase.STOPPED)

    def reset_budget(self, state: SessionState) -> None:
        """Forget issued reprompts (the user aborted the session)."""
        state.reprompt_count = 0
        state.last_reprompt_time = 0.0
