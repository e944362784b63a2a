"""Permission-request interception.

While a session diverts blockers, a permission dialog for a shell
command or file write would stall the run until a human answers it.
Those requests are denied instead and recorded as ``permission``
blockers, with credentials scrubbed from the metadata first.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from ..engine.intake import BlockerIntake, BlockerReport, IntakeOutcome
from ..engine.models import Blocker, BlockerCategory, SessionState

logger = logging.getLogger(__name__)

INTERCEPTED_PERMISSIONS = frozenset({"bash", "edit", "write", "external_directory"})

DENY = "deny"
REDACTED = "[REDACTED]"

_SENSITIVE_KEYWORDS = (
    r"api[\w.\-:]*key",
    "token",
    r"access[\w.\-:]*token",
    r"auth[\w.\-:]*token",
    "bearer",
    "authorization",
    "auth",
    "password",
    "passwd",
    "pwd",
    r"private[\w.\-:]*key",
    "secret",
    r"client[\w.\-:]*secret",
)

# "some_password": "value"
_JSON_PATTERNS = [
    re.compile(rf'("([^"]*{kw}[^"]*)"\s*:\s*)"[^"]*"', re.IGNORECASE)
    for kw in _SENSITIVE_KEYWORDS
]
# some_password=value, --api-key="value"
_CLI_PATTERNS = [
    re.compile(rf"""([^\s=]*{kw}[^\s=]*)=(["']?)[^\s"',]+\2""", re.IGNORECASE)
    for kw in _SENSITIVE_KEYWORDS
]
# Authorization: Bearer value
_HEADER_PATTERN = re.compile(
    r"""(Authorization|Auth):\s*(?:Bearer\s+)?[^\s"',}]+""", re.IGNORECASE,
)
# token: value
_INLINE_PATTERNS = [
    re.compile(rf"""({kw}):\s*[^\s"',}}]+""", re.IGNORECASE)
    for kw in _SENSITIVE_KEYWORDS
]


def redact_sensitive_data(text: str) -> str:
    """Replace credential values in serialized metadata with [REDACTED]."""
    redacted = text
    for pattern in _JSON_PATTERNS:
        redacted = pattern.sub(rf'\1"{REDACTED}"', redacted)
    for pattern in _CLI_PATTERNS:
        redacted = pattern.sub(
            lambda m: f"{m.group(1)}={m.group(2)}{REDACTED}{m.group(2)}", redacted,
        )
    redacted = _HEADER_PATTERN.sub(
        lambda m: f"{m.group(0).split(':')[0]}: {REDACTED}", redacted,
    )
    for pattern in _INLINE_PATTERNS:
        redacted = pattern.sub(
            lambda m: f"{m.group(0).split(':')[0]}: {REDACTED}", redacted,
        )
    return redacted


def permission_question(
    permission_type: str, metadata: dict[str, Any] | None, title: str | None,
) -> str:
    tool = (metadata or {}).get("tool") or title or "unknown"
    return f"Agent requested {permission_type} permission for: {tool}"


def permission_context(metadata: dict[str, Any] | None) -> str:
    return redact_sensitive_data(
        json.dumps(metadata or {}, ensure_ascii=False, default=str)
    )


class PermissionHandler:
    """Turns intercepted permission requests into recorded blockers."""

    def __init__(self, intake: BlockerIntake) -> None:
        self._intake = intake

    @staticmethod
    def intercepts(state: SessionState, permission_type: str) -> bool:
        return (
            state.enabled
            and state.divert_blockers
            and permission_type in INTERCEPTED_PERMISSIONS
        )

    def handle(
        self,
        state: SessionState,
        session_id: str,
        permission_type: str,
        metadata: dict[str, Any] | None = None,
        title: str | None = None,
    ) -> tuple[str | None, IntakeOutcome | None, Blocker | None]:
        """Decide one permission request.

        Returns ``(status, outcome, blocker)``. status is ``"deny"`` for
        an intercepted request (duplicates and over-cap requests are
        still denied, just not recorded) and None when the host should
        ask the user as usual.
        """
        if not self.intercepts(state, permission_type):
            logger.debug(
                "Permission %s not intercepted for session %s",
                permission_type, session_id,
            )
            return None, None, None

        report = BlockerReport(
            question=permission_question(permission_type, metadata, title),
            category=BlockerCategory.PERMISSION,
            context=permission_context(metadata),
        )
        outcome, blocker = self._intake.record(state, session_id, report)
        return DENY, outcome, blocker
