from __future__ import annotations

from blocker_diverter.engine.config import DiverterConfig
from blocker_diverter.engine.models import Blocker, BlockerCategory, SessionState
from blocker_diverter.shared.commands import (
    handle_blockers_command,
    parse_command,
)


def _state_with_blockers(*questions: str) -> SessionState:
    state = SessionState()
    for i, q in enumerate(questions):
        state.blockers.append(Blocker(
            id=f"id{i}", timestamp="t", session_id="s",
            category=BlockerCategory.SECURITY, question=q,
        ))
    return state


def test_parse_command() -> None:
    parsed = parse_command("/blockers.on  extra")
    assert parsed.name == "blockers.on"
    assert parsed.args == ["extra"]
    assert parse_command("blockers.status").name == "blockers.status"
    assert parse_command("   ") is None
    assert parse_command("/") is None


def test_on_and_off_toggle_diversion() -> None:
    state = SessionState(divert_blockers=False)
    result = handle_blockers_command("/blockers.on", state, DiverterConfig())
    assert result.handled
    assert result.toast.variant == "success"
    assert "Enabled" in result.toast.message
    assert result.minimal_response
    assert state.divert_blockers is True

    result = handle_blockers_command("blockers.off", state, DiverterConfig())
    assert "Disabled" in result.toast.message
    assert state.divert_blockers is False


def test_space_separated_form() -> None:
    state = SessionState(divert_blockers=False)
    assert handle_blockers_command("/blockers on", state, DiverterConfig()).handled
    assert state.divert_blockers is True


def test_status() -> None:
    state = _state_with_blockers("a", "b")
    state.reprompt_count = 3
    result = handle_blockers_command("/blockers.status", state, DiverterConfig())
    assert result.handled
    assert result.toast.variant == "info"
    assert result.minimal_response == (
        "Blocker Diverter Status:\n"
        "  State: enabled\n"
        "  Blockers recorded: 2/50\n"
        "  Reprompt count: 3"
    )

    state.divert_blockers = False
    result = handle_blockers_command("/blockers.status", state, DiverterConfig())
    assert "disabled" in result.toast.message


def test_list_truncates_long_questions() -> None:
    state = _state_with_blockers("Short question", "x" * 100)
    result = handle_blockers_command("/blockers.list", state, DiverterConfig())
    lines = result.minimal_response.splitlines()
    assert lines[0] == "Recorded Blockers (2):"
    assert lines[1] == "1. [security] Short question"
    assert lines[2] == "2. [security] " + "x" * 80 + "..."


def test_list_empty() -> None:
    result = handle_blockers_command("/blockers.list", SessionState(), DiverterConfig())
    assert result.minimal_response == "No blockers recorded in this session"


def test_help() -> None:
    result = handle_blockers_command("/blockers", SessionState(), DiverterConfig())
    assert result.handled
    assert result.minimal_response.startswith("Blocker Diverter Commands:")
    for name in ("blockers.on", "blockers.off", "blockers.status", "blockers.list"):
        assert name in result.minimal_response


def test_unknown_subcommand_shows_help() -> None:
    state = SessionState()
    result = handle_blockers_command("/blockers.bogus", state, DiverterConfig())
    assert result.handled
    assert result.toast.variant == "warning"
    assert "Unknown subcommand: bogus" in result.minimal_response
    assert state.divert_blockers is True


def test_foreign_commands_not_handled() -> None:
    result = handle_blockers_command("/compact", SessionState(), DiverterConfig())
    assert result.handled is False
    assert result.toast is None
    assert result.minimal_response is None
