"""Hash-based blocker deduplication with time-boxed cooldowns.

A blocker is identified by the SHA-256 of its normalized
(question, context) pair. Once recorded, the hash is suppressed until
its cooldown expires.
"""
from __future__ import annotations

import hashlib
import json
import re

from .models import SessionState, now_ms

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Trim and collapse whitespace runs (tabs, newlines included)."""
    return _WHITESPACE_RE.sub(" ", text.strip())


def blocker_hash(question: str, context: str = "") -> str:
    """Return the 64-char lowercase hex SHA-256 of a blocker.

    The pair is serialized as a JSON array, so a value containing the
    characters another value would be joined with cannot collide:
    ``("a|b", "c")`` and ``("a", "b|c")`` hash differently. Matching is
    case-sensitive.
    """
    payload = json.dumps(
        [normalize_text(question), normalize_text(context or "")],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_in_cooldown(
    digest: str, state: SessionState, now: float | None = None,
) -> bool:
    """True iff digest has an expiry strictly after now. Read-only."""
    expiry = state.cooldown_hashes.get(digest)
    if expiry is None:
        return False
    current = now_ms() if now is None else now
    return expiry > current


def add_to_cooldown(
    digest: str,
    state: SessionState,
    cooldown_ms: float,
    now: float | None = None,
) -> float:
    """Set digest's expiry to now + cooldown_ms and return it.

    Re-adding an existing digest overwrites its expiry.
    """
    current = now_ms() if now is None else now
    expiry = current + cooldown_ms
    state.cooldown_hashes[digest] = expiry
    return expiry


def prune_expired(state: SessionState, now: float | None = None) -> int:
    """Drop expired cooldown entries. Returns how many were removed."""
    current = now_ms() if now is None else now
    expired = [h for h, expiry in state.cooldown_hashes.items() if expiry <= current]
    for digest in expired:
        del state.cooldown_hashes[digest]
    return len(expired)
