"""Prompt text the controller injects into a session.

Every value that originates outside this module (blocker questions,
categories, permission names, the configured marker) goes through
sanitize.py before it is interpolated.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from .config import DEFAULT_COMPLETION_MARKER, DiverterConfig
from .models import Blocker, SessionState, category_text
from .sanitize import sanitize_blocker_text, sanitize_input

logger = logging.getLogger(__name__)

BLOCKER_RESPONSE_MESSAGE = (
    "Great, blocker registered, move on with the next non-blocking issues!"
)

DISABLED_RESPONSE_MESSAGE = (
    "Blocker diversion is disabled for this session. "
    "Use /blockers.on to enable."
)

AUTONOMOUS_QUESTION_MESSAGE = (
    "Blocker Diverter: Autonomous mode is active. Do not ask the user "
    "questions; make a reasonable default choice based on project "
    "conventions, log your decision in the response, and continue "
    "working on the next task."
)

# Blockers listed in the system prompt and the compaction summary.
SYSTEM_PROMPT_RECENT = 3
COMPACTION_RECENT = 5


_TAG_CHARS = {ord("<"): None, ord(">"): None}


def _marker(config: DiverterConfig) -> str:
    """The completion marker as the agent must repeat it, verbatim."""
    marker = sanitize_input(config.completion_marker).translate(_TAG_CHARS)
    return marker or DEFAULT_COMPLETION_MARKER


def continuation_prompt(config: DiverterConfig) -> str:
    """Nudge sent on idle when the agent still has reprompt budget."""
    return (
        "Check the progress on current tasks. If there's more non-blocking "
        "work to do, continue. When all work is complete, say "
        f"'{_marker(config)}'!"
    )


def permission_prompt(permission: str) -> str:
    """Follow-up sent after a permission request was denied and logged."""
    return (
        f"Log this {sanitize_input(permission)} permission request as a "
        "blocker and continue with other non-blocking tasks."
    )


def blocker_line(blocker: Blocker) -> str:
    category = sanitize_blocker_text(category_text(blocker.category))
    return f"- [{category}] {sanitize_blocker_text(blocker.question)}"


def build_system_prompt(state: SessionState, config: DiverterConfig) -> str:
    """Autonomous-mode instructions appended to the system prompt."""
    marker = _marker(config)
    sections = [
        '<blocker-diverter-mode enabled="true">',
        "You are running in autonomous mode. The user is not available to "
        "answer questions. Keep working instead of stopping to ask.",
        "",
        "## HARD BLOCKERS (log with the blocker tool, then move on)",
        "- Framework or architecture choices that are hard to undo",
        "- Security-sensitive decisions (credentials, auth, data exposure)",
        "- Destructive operations (deleting data, force pushes, migrations)",
        "- Permissions you were denied",
        "",
        "## SOFT QUESTIONS (decide yourself, do not stop)",
        "- Naming of variables, functions and files",
        "- Formatting and code style",
        "- Minor implementation details with an obvious default",
        "For a soft question you may still log a blocker with "
        "blocksProgress=false, the options you considered and the one "
        "you chose.",
        "",
        "## Decision Framework",
        "1. Can a reasonable developer pick a default from project "
        "conventions? Pick it and continue.",
        "2. Would a wrong choice be costly or irreversible? Log a hard "
        "blocker and switch to other work.",
        "3. Never wait for an answer. After logging, continue with the "
        "next non-blocking task.",
        "",
        "## Completion",
        f"When all non-blocked work is finished, say {marker}",
    ]

    recent = state.blockers[-SYSTEM_PROMPT_RECENT:]
    if recent:
        sections += [
            "",
            "## Current Session Context",
            f"Blockers Logged: {len(state.blockers)}",
        ]
        sections += [blocker_line(b) for b in recent]

    sections.append("</blocker-diverter-mode>")
    return "\n".join(sections)


def _sanitized_entry(blocker: Blocker) -> dict:
    entry = blocker.to_dict()
    for key in ("question", "context", "chosen_option", "chosen_reasoning"):
        if isinstance(entry.get(key), str):
            entry[key] = sanitize_blocker_text(entry[key])
    entry["category"] = sanitize_blocker_text(entry["category"])
    if "options" in entry:
        entry["options"] = [sanitize_blocker_text(o) for o in entry["options"]]
    return entry


def compaction_summary(blockers: Sequence[Blocker]) -> str:
    """Blocker summary preserved across a context compaction."""
    recent = [_sanitized_entry(b) for b in list(blockers)[-COMPACTION_RECENT:]]
    return (
        "<active-blockers>\n"
        f"Recent blockers logged: {len(blockers)}\n"
        f"Latest: {json.dumps(recent, indent=2, ensure_ascii=False)}\n"
        "</active-blockers>"
    )
