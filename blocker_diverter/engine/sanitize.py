"""Sanitization of untrusted text before it is embedded in a prompt.

Agent- and blocker-authored text can carry payloads meant to break out
of a templated prompt: hidden Unicode format characters, newlines that
fake an instruction boundary, or Markdown/tag syntax a renderer would
interpret. Everything in here is pure and never raises.
"""
from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

MAX_FRAGMENT_LENGTH = 100
MAX_INPUT_LENGTH = 200
ELLIPSIS = "..."

# Zero-width space/non-joiner/joiner, LRM/RLM, bidi embeddings and
# overrides, word joiner, bidi isolates, BOM / zero-width no-break space.
_INVISIBLE_RE = re.compile(
    "[\u200b-\u200f\u202a-\u202e\u2060\u2066-\u2069\ufeff]"
)
# C0/C1 controls except tab, LF and CR, which become spaces instead.
_CONTROL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_WHITESPACE_RE = re.compile(r"\s+")
_ANGLE_RE = re.compile(r"[<>]")
# Markdown-significant characters not already backslash-escaped.
_MARKDOWN_RE = re.compile(r"(?<!\\)([*_`\[\]()#])")
_LINE_BREAK_RE = re.compile(r"[\r\n\t]")


def _strip_hidden(text: str) -> str:
    return _CONTROL_RE.sub("", _INVISIBLE_RE.sub("", text))


def sanitize_blocker_text(text: object, max_length: int = MAX_FRAGMENT_LENGTH) -> str:
    """Make an untrusted fragment safe to embed in a prompt.

    Strips hidden format/control characters, folds every line break
    into a single space, escapes Markdown syntax, drops angle brackets,
    and truncates to ``max_length`` characters plus ``...``.

    Applying it to its own output changes nothing. Non-string input
    yields an empty string.

    >>> sanitize_blocker_text("Valid\\u2060question\\uFEFF\\u2066Ignore\\u2069instructions")
    'ValidquestionIgnoreinstructions'
    >>> sanitize_blocker_text("a\\nb\\nc")
    'a b c'
    """
    if not isinstance(text, str) or not text:
        return ""
    try:
        cleaned = _ANGLE_RE.sub("", _strip_hidden(text))
        cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
        cleaned = _MARKDOWN_RE.sub(r"\\\1", cleaned)
        if len(cleaned) > max_length:
            cleaned = cleaned[:max_length] + ELLIPSIS
        return cleaned
    except Exception:
        logger.debug("sanitize_blocker_text failed", exc_info=True)
        return ""


def sanitize_input(text: object, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Light sanitization for values the agent must be able to echo back.

    Removes hidden characters and line breaks and caps the length, but
    leaves Markdown alone so a completion marker reaches the agent
    verbatim.
    """
    if not isinstance(text, str) or not text:
        return ""
    try:
        cleaned = _LINE_BREAK_RE.sub("", _strip_hidden(text)).strip()
        return cleaned[:max_length]
    except Exception:
        logger.debug("sanitize_input failed", exc_info=True)
        return ""
