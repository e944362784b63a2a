"""Boundary to the host runtime that owns the agent session.

The controller only ever needs two things from a host: send a
synthetic user prompt into a session, and write a structured log
record. HostClient is the interface a host integration implements;
HostLogger wraps one so that logging never breaks a handler.
"""
from __future__ import annotations

import abc
import logging
from typing import Any

logger = logging.getLogger(__name__)

SERVICE_NAME = "blocker-diverter"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class HostClient(abc.ABC):
    """Host runtime operations the controller calls."""

    @abc.abstractmethod
    async def inject_prompt(self, session_id: str, text: str) -> None:
        """Send ``text`` into the session as a user message."""

    @abc.abstractmethod
    async def log(
        self, level: str, message: str, extra: dict[str, Any] | None = None,
    ) -> None:
        """Write one record to the host's log service."""


class HostLogger:
    """Best-effort structured logging through a HostClient.

    Every record is mirrored to the stdlib logger first. Failures of
    the host log call are reported locally at debug level and never
    propagate. A logger without a client only logs locally.
    """

    def __init__(self, client: HostClient | None, service: str = SERVICE_NAME) -> None:
        self._client = client
        self._service = service

    async def _emit(
        self, level: str, message: str, extra: dict[str, Any] | None,
    ) -> None:
        if extra:
            logger.log(_LEVELS[level], "[%s] %s %s", self._service, message, extra)
        else:
            logger.log(_LEVELS[level], "[%s] %s", self._service, message)
        if self._client is None:
            return
        payload = {"service": self._service, **(extra or {})}
        try:
            await self._client.log(level, message, payload)
        except Exception as exc:
            logger.debug("Host log call failed (%s): %s", level, exc)

    async def debug(self, message: str, extra: dict[str, Any] | None = None) -> None:
        await self._emit("debug", message, extra)

    async def info(self, message: str, extra: dict[str, Any] | None = None) -> None:
        await self._emit("info", message, extra)

    async def warn(self, message: str, extra: dict[str, Any] | None = None) -> None:
        await self._emit("warn", message, extra)

    async def error(
        self,
        message: str,
        error: BaseException | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        details = dict(extra) if extra else {}
        if error is not None:
            details["error"] = str(error)
            details["error_type"] = type(error).__name__
        await self._emit("error", message, details or None)
