"""Slash command parser and the /blockers.* command handlers."""

from __future__ import annotations

from dataclasses import dataclass

from ..engine.config import DiverterConfig
from ..engine.models import SessionState, category_text

LIST_QUESTION_WIDTH = 80


@dataclass
class ParsedCommand:
    """A parsed slash command."""

    name: str
    args: list[str]
    raw: str


@dataclass(frozen=True)
class Toast:
    """Short notification a host may display."""

    message: str
    variant: str = "info"  # info | success | warning | error


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a /blockers.* command."""

    handled: bool
    toast: Toast | None = None
    minimal_response: str | None = None


NOT_HANDLED = CommandResult(handled=False)


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a /command from input text.

    A leading '/' is optional since hosts pass bare command names too.
    Returns None for empty input.
    """
    stripped = text.strip()
    if not stripped:
        return None
    parts = stripped.split()
    name = parts[0].lstrip("/")
    if not name:
        return None
    args = parts[1:] if len(parts) > 1 else []
    return ParsedCommand(name=name, args=args, raw=stripped)


COMMAND_HELP: dict[str, str] = {
    "blockers.on": "Enable blocker diversion for this session",
    "blockers.off": "Disable blocker diversion for this session",
    "blockers.status": "Show current state and blocker count",
    "blockers.list": "List all recorded blockers",
    "blockers": "Show this help message",
}


def _subcommand(parsed: ParsedCommand) -> str | None:
    """Map '/blockers.on' and '/blockers on' to 'on'; '' for bare /blockers."""
    if parsed.name == "blockers":
        return parsed.args[0] if parsed.args else ""
    if parsed.name.startswith("blockers."):
        return parsed.name[len("blockers."):]
    return None


def handle_on(state: SessionState) -> CommandResult:
    state.divert_blockers = True
    return CommandResult(
        handled=True,
        toast=Toast("Blocker Diverter Enabled for this session", "success"),
        minimal_response="Blocker diverter enabled for this session.",
    )


def handle_off(state: SessionState) -> CommandResult:
    state.divert_blockers = False
    return CommandResult(
        handled=True,
        toast=Toast("Blocker Diverter Disabled for this session", "success"),
        minimal_response="Blocker diverter disabled for this session.",
    )


def status_text(state: SessionState, config: DiverterConfig) -> str:
    status = "enabled" if state.divert_blockers else "disabled"
    return (
        "Blocker Diverter Status:\n"
        f"  State: {status}\n"
        f"  Blockers recorded: {len(state.blockers)}/{config.max_blockers_per_run}\n"
        f"  Reprompt count: {state.reprompt_count}"
    )


def handle_status(state: SessionState, config: DiverterConfig) -> CommandResult:
    text = status_text(state, config)
    return CommandResult(
        handled=True,
        toast=Toast(text, "info"),
        minimal_response=text,
    )


def list_text(state: SessionState) -> str:
    if not state.blockers:
        return "No blockers recorded in this session"
    lines = []
    for index, blocker in enumerate(state.blockers, start=1):
        question = blocker.question
        if len(question) > LIST_QUESTION_WIDTH:
            question = question[:LIST_QUESTION_WIDTH] + "..."
        lines.append(f"{index}. [{category_text(blocker.category)}] {question}")
    return f"Recorded Blockers ({len(state.blockers)}):\n" + "\n".join(lines)


def handle_list(state: SessionState) -> CommandResult:
    text = list_text(state)
    return CommandResult(handled=True, toast=Toast(text, "info"), minimal_response=text)


def help_text() -> str:
    lines = ["Blocker Diverter Commands:"]
    for name, desc in COMMAND_HELP.items():
        lines.append(f"  /{name:<17} - {desc}")
    return "\n".join(lines)


def handle_blockers_command(
    text: str, state: SessionState, config: DiverterConfig,
) -> CommandResult:
    """Run a /blockers.* command against one session's state.

    Commands for other plugins come back with handled=False.
    """
    parsed = parse_command(text)
    if parsed is None:
        return NOT_HANDLED
    sub = _subcommand(parsed)
    if sub is None:
        return NOT_HANDLED

    if sub == "on":
        return handle_on(state)
    if sub == "off":
        return handle_off(state)
    if sub == "status":
        return handle_status(state, config)
    if sub == "list":
        return handle_list(state)
    if sub in ("", "help"):
        text = help_text()
        return CommandResult(handled=True, toast=Toast(text, "info"), minimal_response=text)

    message = f"Unknown subcommand: {sub}. Use /blockers.[on|off|status|list]"
    return CommandResult(
        handled=True,
        toast=Toast(message, "warning"),
        minimal_response=message + "\n" + help_text(),
    )
