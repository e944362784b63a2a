"""Deadline guard for awaited calls into the host client.

The host offers no cancellation primitive, so an expired call is
abandoned rather than cancelled: it keeps running, and whatever it
eventually returns or raises is consumed and dropped.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from .errors import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_result(task: asyncio.Future) -> None:
    """Retrieve an abandoned task's outcome so it is never reported as lost."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned operation finished with error: %s", exc)


async def with_timeout(
    operation: Awaitable[T],
    duration_ms: float,
    label: str = "Operation",
) -> T:
    """Await ``operation`` for at most ``duration_ms`` milliseconds.

    Raises OperationTimeoutError("<label> timed out after <n>ms") when
    the deadline passes first. Errors raised by the operation itself
    propagate unchanged. A zero or negative duration expires
    immediately.
    """
    task = asyncio.ensure_future(operation)
    if duration_ms <= 0:
        task.add_done_callback(_discard_result)
        raise OperationTimeoutError(label, duration_ms)

    done, _pending = await asyncio.wait({task}, timeout=duration_ms / 1000.0)
    if task in done:
        return task.result()

    task.add_done_callback(_discard_result)
    raise OperationTimeoutError(label, duration_ms)
