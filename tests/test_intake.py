from __future__ import annotations

from pathlib import Path

import pytest

from blocker_diverter.engine.config import DiverterConfig
from blocker_diverter.engine.errors import InvalidBlockerError
from blocker_diverter.engine.intake import (
    BlockerIntake,
    BlockerReport,
    IntakeOutcome,
    blocker_tool_schema,
)
from blocker_diverter.engine.models import BlockerCategory, SessionState
from blocker_diverter.engine.templates import (
    BLOCKER_RESPONSE_MESSAGE,
    DISABLED_RESPONSE_MESSAGE,
)


class _Clock:
    def __init__(self, now: float = 1_700_000_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _intake(tmp_path: Path, clock: _Clock | None = None, **overrides) -> BlockerIntake:
    config = DiverterConfig(**overrides)
    return BlockerIntake(config, tmp_path, clock or _Clock())


def _report(question: str = "Which database?", **kwargs) -> BlockerReport:
    return BlockerReport(question=question, category=BlockerCategory.ARCHITECTURE, **kwargs)


# ── Argument validation ──────────────────────────────────────

def test_from_args_defaults() -> None:
    report = BlockerReport.from_args({"question": "Q?", "category": "security"})
    assert report.category == BlockerCategory.SECURITY
    assert report.context == ""
    assert report.blocks_progress is True
    assert report.options is None


def test_from_args_accepts_camel_case_soft_blocker() -> None:
    report = BlockerReport.from_args({
        "question": "Q?",
        "category": "question",
        "blocksProgress": False,
        "options": ["a", "b", "c"],
        "chosenOption": "b",
        "chosenReasoning": "fits conventions",
    })
    assert report.blocks_progress is False
    assert report.options == ("a", "b", "c")
    assert report.chosen_option == "b"


@pytest.mark.parametrize("args,reason", [
    ({"category": "other"}, "Question cannot be empty"),
    ({"question": "   ", "category": "other"}, "Question cannot be empty"),
    ({"question": "Q", "category": "deployment"}, "category must be one of"),
    ({"question": "Q", "category": "other", "context": 5}, "context must be a string"),
    ({"question": "Q", "category": "other", "blocksProgress": "no"}, "must be a boolean"),
    ({"question": "Q", "category": "other", "blocksProgress": False}, "must include options"),
    ({"question": "Q", "category": "other", "options": ["a", 1]}, "list of strings"),
    ({"question": "Q", "category": "other", "options": ["a"], "chosenOption": "z"},
     "must be one of the options"),
])
def test_from_args_rejects(args: dict, reason: str) -> None:
    with pytest.raises(InvalidBlockerError, match=reason):
        BlockerReport.from_args(args)


def test_from_args_rejects_non_mapping() -> None:
    with pytest.raises(InvalidBlockerError, match="Invalid blocker tool arguments"):
        BlockerReport.from_args(["question"])


def test_tool_schema() -> None:
    schema = blocker_tool_schema()
    assert schema["name"] == "blocker"
    params = schema["parameters"]
    assert params["required"] == ["question", "category"]
    assert params["properties"]["category"]["enum"] == BlockerCategory.values()


# ── Recording ────────────────────────────────────────────────

def test_record_writes_file_and_updates_state(tmp_path: Path) -> None:
    clock = _Clock()
    intake = _intake(tmp_path, clock)
    state = SessionState()

    outcome, blocker = intake.record(state, "ses_1", _report())

    assert outcome == IntakeOutcome.RECORDED
    assert blocker.id.startswith("1700000000000-ses_1-")
    assert len(blocker.id.rsplit("-", 1)[1]) == 6
    assert blocker.timestamp == "2023-11-14T22:13:20.000Z"
    assert state.blockers == [blocker]
    assert state.last_blocker_time == clock.now
    assert len(state.cooldown_hashes) == 1
    assert "Which database?" in (tmp_path / "BLOCKERS.md").read_text(encoding="utf-8")


def test_duplicate_within_cooldown_is_skipped(tmp_path: Path) -> None:
    clock = _Clock()
    intake = _intake(tmp_path, clock, cooldown_ms=30_000)
    state = SessionState()
    intake.record(state, "ses_1", _report())

    clock.now += 10_000
    outcome, blocker = intake.record(state, "ses_1", _report("  Which   database? "))
    assert outcome == IntakeOutcome.DUPLICATE
    assert blocker is None
    assert len(state.blockers) == 1

    clock.now += 30_000
    outcome, _ = intake.record(state, "ses_1", _report())
    assert outcome == IntakeOutcome.RECORDED
    assert len(state.blockers) == 2


def test_cap_is_enforced(tmp_path: Path) -> None:
    intake = _intake(tmp_path, max_blockers_per_run=2)
    state = SessionState()
    for i in range(2):
        assert intake.record(state, "s", _report(f"Q{i}"))[0] == IntakeOutcome.RECORDED
    assert intake.record(state, "s", _report("Q9"))[0] == IntakeOutcome.CAP_REACHED
    assert len(state.blockers) == 2


def test_failed_write_is_queued_then_flushed(tmp_path: Path) -> None:
    intake = _intake(tmp_path)
    state = SessionState()
    (tmp_path / "BLOCKERS.md").mkdir()

    outcome, queued = intake.record(state, "s", _report("first"))
    assert outcome == IntakeOutcome.QUEUED
    assert state.pending_writes == [queued]
    assert state.blockers == []

    (tmp_path / "BLOCKERS.md").rmdir()
    outcome, second = intake.record(state, "s", _report("second"))
    assert outcome == IntakeOutcome.RECORDED
    assert state.pending_writes == []
    assert state.blockers == [queued, second]
    content = (tmp_path / "BLOCKERS.md").read_text(encoding="utf-8")
    assert content.index("first") < content.index("second")


def test_pending_writes_count_toward_cap(tmp_path: Path) -> None:
    intake = _intake(tmp_path, max_blockers_per_run=1)
    state = SessionState()
    (tmp_path / "BLOCKERS.md").mkdir()
    intake.record(state, "s", _report("first"))
    assert intake.record(state, "s", _report("second"))[0] == IntakeOutcome.CAP_REACHED


def test_expired_cooldowns_are_pruned(tmp_path: Path) -> None:
    clock = _Clock()
    intake = _intake(tmp_path, clock, cooldown_ms=1000)
    state = SessionState()
    intake.record(state, "s", _report("a"))
    clock.now += 5000
    intake.record(state, "s", _report("b"))
    assert len(state.cooldown_hashes) == 1


def test_report_replies(tmp_path: Path) -> None:
    intake = _intake(tmp_path)
    state = SessionState()
    result = intake.report(state, "s", _report())
    assert result.reply == BLOCKER_RESPONSE_MESSAGE
    assert result.outcome == IntakeOutcome.RECORDED

    duplicate = intake.report(state, "s", _report())
    assert duplicate.reply == BLOCKER_RESPONSE_MESSAGE
    assert duplicate.outcome == IntakeOutcome.DUPLICATE

    state.divert_blockers = False
    disabled = intake.report(state, "s", _report("other"))
    assert disabled.reply == DISABLED_RESPONSE_MESSAGE
    assert disabled.outcome == IntakeOutcome.DISABLED
