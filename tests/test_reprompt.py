from __future__ import annotations

import pytest

from blocker_diverter.engine.config import DiverterConfig
from blocker_diverter.engine.lifecycle import VALID_TRANSITIONS, validate_transition
from blocker_diverter.engine.models import RepromptPhase, SessionState, StopReason
from blocker_diverter.engine.reprompt import (
    RepromptController,
    extract_text,
    response_hash,
)

MARKER = "BLOCKER_DIVERTER_DONE!"
WINDOW = 300_000


def _controller(**overrides) -> RepromptController:
    return RepromptController(DiverterConfig(**overrides))


def _cycle(ctl: RepromptController, state: SessionState, now: float):
    decision = ctl.evaluate(state, now)
    if decision.should_inject:
        ctl.commit_reprompt(state, now)
    return decision


# ── Transitions ──────────────────────────────────────────────

def test_every_phase_has_transition_rules() -> None:
    assert set(VALID_TRANSITIONS) == set(RepromptPhase)


def test_invalid_transition_raises() -> None:
    with pytest.raises(ValueError, match="waiting_for_idle -> continued"):
        validate_transition(RepromptPhase.WAITING_FOR_IDLE, RepromptPhase.CONTINUED)


def test_commit_without_evaluate_is_rejected() -> None:
    ctl = _controller()
    with pytest.raises(ValueError):
        ctl.commit_reprompt(SessionState(), 1000)


# ── Message capture ──────────────────────────────────────────

def test_extract_text_joins_text_parts_and_skips_tools() -> None:
    parts = [
        {"type": "text", "text": "first"},
        {"type": "tool", "tool": "bash", "text": "ignored"},
        "second",
        {"type": "text", "text": 42},
    ]
    assert extract_text(parts) == "first\nsecond"


def test_capture_ignores_non_assistant_messages() -> None:
    ctl = _controller()
    state = SessionState()
    ctl.capture_message(state, ["from assistant"])
    assert ctl.capture_message(state, [f"user says {MARKER}"], role="user") is None
    assert state.last_message_content == "from assistant"


def test_capture_with_no_text_keeps_previous_content() -> None:
    ctl = _controller()
    state = SessionState()
    ctl.capture_message(state, ["hello"])
    ctl.capture_message(state, [{"type": "tool", "tool": "bash"}])
    assert state.last_message_content == "hello"
    assert len(state.recent_response_hashes) == 1


def test_capture_records_bounded_response_history() -> None:
    ctl = _controller()
    state = SessionState()
    for i in range(15):
        ctl.capture_message(state, [f"message {i}"])
    assert len(state.recent_response_hashes) == 10
    assert state.recent_response_hashes[-1] == response_hash("message 14")


def test_capture_returns_phase_to_waiting() -> None:
    ctl = _controller()
    state = SessionState()
    _cycle(ctl, state, 1_000_000)
    assert state.phase == RepromptPhase.CONTINUED
    ctl.capture_message(state, ["working"])
    assert state.phase == RepromptPhase.WAITING_FOR_IDLE


# ── Completion marker ────────────────────────────────────────

@pytest.mark.parametrize("content", [
    f"{MARKER} I fixed everything.",
    f"All done. {MARKER}",
    f"I finished the work. {MARKER} Everything is ready.",
    f"\n\n   {MARKER}   \n",
    f"{MARKER} and again {MARKER}",
])
def test_completion_marker_detected_anywhere(content: str) -> None:
    ctl = _controller()
    state = SessionState()
    ctl.capture_message(state, [content])
    decision = ctl.evaluate(state, 1_000_000)
    assert decision.phase == RepromptPhase.STOPPED
    assert decision.reason == StopReason.COMPLETED


def test_marker_is_case_sensitive() -> None:
    ctl = _controller()
    state = SessionState()
    ctl.capture_message(state, [MARKER.lower()])
    assert ctl.completion_detected(state) is False


def test_completion_wins_over_remaining_budget() -> None:
    ctl = _controller()
    state = SessionState()
    ctl.capture_message(state, [f"done {MARKER}"])
    assert ctl.evaluate(state, 1_000_000).reason == StopReason.COMPLETED
    assert state.reprompt_count == 0


def test_custom_marker() -> None:
    ctl = _controller(completion_marker="ALL_WORK_DONE")
    state = SessionState()
    ctl.capture_message(state, [f"said {MARKER}"])
    assert ctl.evaluate(state, 1_000_000).should_inject
    ctl.abandon(state)
    ctl.capture_message(state, ["ALL_WORK_DONE"])
    assert ctl.evaluate(state, 1_000_000).reason == StopReason.COMPLETED


# ── Budget ───────────────────────────────────────────────────

def test_five_reprompts_then_refused_within_window() -> None:
    ctl = _controller(max_reprompts=5, reprompt_window_ms=WINDOW)
    state = SessionState()
    start = 10_000_000.0

    for i in range(5):
        decision = _cycle(ctl, state, start + i * 1000)
        assert decision.should_inject
        assert state.reprompt_count == i + 1

    sixth = _cycle(ctl, state, start + 5000)
    assert sixth.phase == RepromptPhase.STOPPED
    assert sixth.reason == StopReason.BUDGET_EXHAUSTED
    assert state.reprompt_count == 5


def test_window_expiry_resets_budget() -> None:
    ctl = _controller(max_reprompts=5, reprompt_window_ms=WINDOW)
    state = SessionState()
    start = 10_000_000.0
    for i in range(5):
        _cycle(ctl, state, start + i)
    last = start + 4

    assert not _cycle(ctl, state, last + WINDOW).should_inject
    decision = _cycle(ctl, state, last + WINDOW + 1)
    assert decision.should_inject
    assert state.reprompt_count == 1


def test_count_never_exceeds_max() -> None:
    ctl = _controller(max_reprompts=2)
    state = SessionState()
    for i in range(10):
        _cycle(ctl, state, 10_000_000 + i)
        assert 0 <= state.reprompt_count <= 2


def test_abandon_leaves_budget_untouched() -> None:
    ctl = _controller()
    state = SessionState()
    decision = ctl.evaluate(state, 10_000_000)
    assert decision.should_inject
    ctl.abandon(state)
    assert state.phase == RepromptPhase.STOPPED
    assert state.reprompt_count == 0
    assert state.last_reprompt_time == 0.0


# ── Guards ───────────────────────────────────────────────────

def test_recovering_skips_one_cycle() -> None:
    ctl = _controller()
    state = SessionState(is_recovering=True)
    decision = ctl.evaluate(state, 10_000_000)
    assert decision.reason == StopReason.RECOVERING
    assert state.is_recovering is False
    assert ctl.evaluate(state, 10_000_001).should_inject


@pytest.mark.parametrize("enabled,divert", [(False, True), (True, False)])
def test_disabled_session_is_not_reprompted(enabled: bool, divert: bool) -> None:
    ctl = _controller()
    state = SessionState(enabled=enabled, divert_blockers=divert)
    assert ctl.evaluate(state, 10_000_000).reason == StopReason.DISABLED


def test_repeating_agent_is_stopped() -> None:
    ctl = _controller()
    state = SessionState()
    for _ in range(3):
        ctl.capture_message(state, ["Checking progress...  "])
    assert ctl.is_repeating(state)
    assert ctl.evaluate(state, 10_000_000).reason == StopReason.REPEATING


def test_varied_responses_are_not_repeating() -> None:
    ctl = _controller()
    state = SessionState()
    for text in ("a", "b", "a"):
        ctl.capture_message(state, [text])
    assert not ctl.is_repeating(state)


def test_reset_budget() -> None:
    ctl = _controller()
    state = SessionState(reprompt_count=4, last_reprompt_time=123.0)
    ctl.reset_budget(state)
    assert state.reprompt_count == 0
    assert state.last_reprompt_time == 0.0
