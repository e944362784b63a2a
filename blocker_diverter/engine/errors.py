"""Exception hierarchy for the session controller.

Specific exceptions for each failure mode. Handlers catch these at
their outermost boundary; nothing here is meant to reach the host.
"""
from __future__ import annotations


class DiverterError(Exception):
    """Base exception for all blocker-diverter errors."""


class OperationTimeoutError(DiverterError, TimeoutError):
    """An awaited host call exceeded its time budget."""
    def __init__(self, label: str, duration_ms: float):
        self.label = label
        self.duration_ms = duration_ms
        shown = int(duration_ms) if float(duration_ms).is_integer() else duration_ms
        super().__init__(f"{label} timed out after {shown}ms")


class HostCallError(DiverterError):
    """A call into the host client rejected."""
    def __init__(self, operation: str, session_id: str, reason: str):
        self.operation = operation
        self.session_id = session_id
        self.reason = reason
        super().__init__(
            f"Host call '{operation}' failed for session {session_id}: {reason}"
        )


class InvalidBlockerError(DiverterError):
    """Blocker tool arguments failed validation at the trust boundary."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid blocker tool arguments: {reason}")


class PathTraversalError(DiverterError):
    """A configured file path resolves outside the project directory."""
    def __init__(self, path: str, project_dir: str):
        self.path = path
        self.project_dir = project_dir
        super().__init__(
            f"Invalid path: Path \"{path}\" resolves outside project "
            f"directory {project_dir} (attempted directory traversal)"
        )


class ConfigError(DiverterError):
    """A configuration value violates its constraint."""
    def __init__(self, field_name: str, value: object, constraint: str):
        self.field_name = field_name
        self.value = value
        self.constraint = constraint
        super().__init__(
            f"Invalid config value for {field_name}={value!r}: {constraint}"
        )
