"""Keyed store of per-session state.

One SessionState per live session, created on session-created and
dropped on session-deleted. Handlers only ever touch the record of
the session their event belongs to; the lock covers map inserts and
deletes for hosts that deliver events from more than one thread.
"""
from __future__ import annotations

import logging
import threading

from .config import DiverterConfig
from .models import SessionState

logger = logging.getLogger(__name__)


class SessionStore:
    """Map from session id to SessionState."""

    def __init__(self, config: DiverterConfig) -> None:
        self._config = config
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def _new_state(self, config: DiverterConfig) -> SessionState:
        return SessionState(
            enabled=config.enabled,
            divert_blockers=config.default_divert_blockers,
        )

    def create(
        self, session_id: str, config: DiverterConfig | None = None,
    ) -> SessionState:
        """Initialize state for a session, replacing any previous record."""
        state = self._new_state(config or self._config)
        with self._lock:
            if session_id in self._sessions:
                logger.debug("Replacing existing state for session %s", session_id)
            self._sessions[session_id] = state
        return state

    def get(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> SessionState:
        """Return the session's state, creating it lazily.

        Hosts do not always deliver session-created before other
        events (e.g. a plugin loaded into a running session).
        """
        state = self._sessions.get(session_id)
        if state is not None:
            return state
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                state = self._new_state(self._config)
                self._sessions[session_id] = state
        return state

    def delete(self, session_id: str) -> SessionState | None:
        """Discard a session's state. Unknown ids are a no-op."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
