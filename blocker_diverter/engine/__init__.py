"""Blocker Diverter engine - Autonomous-session controller core."""
from .models import (
    Blocker,
    BlockerCategory,
    RepromptDecision,
    RepromptPhase,
    SessionState,
    StopReason,
    ToolDecision,
)
from .config import DiverterConfig
from .errors import (
    ConfigError,
    DiverterError,
    HostCallError,
    InvalidBlockerError,
    OperationTimeoutError,
    PathTraversalError,
)

__all__ = [
    # Controller (lazy import to avoid circular deps)
    "SessionController",
    # Models
    "Blocker",
    "BlockerCategory",
    "RepromptDecision",
    "RepromptPhase",
    "SessionState",
    "StopReason",
    "ToolDecision",
    # Config
    "DiverterConfig",
    # YAML config (lazy import)
    "load_config",
    # Building blocks (lazy import)
    "SessionStore",
    "RepromptController",
    "BlockerIntake",
    "BlockerReport",
    "with_timeout",
    # Errors
    "ConfigError",
    "DiverterError",
    "HostCallError",
    "InvalidBlockerError",
    "OperationTimeoutError",
    "PathTraversalError",
]


def __getattr__(name: str):
    if name == "SessionController":
        from .controller import SessionController
        return SessionController
    if name == "load_config":
        from .yaml_config import load_config
        return load_config
    if name == "SessionStore":
        from .session_store import SessionStore
        return SessionStore
    if name == "RepromptController":
        from .reprompt import RepromptController
        return RepromptController
    if name == "BlockerIntake":
        from .intake import BlockerIntake
        return BlockerIntake
    if name == "BlockerReport":
        from .intake import BlockerReport
        return BlockerReport
    if name == "with_timeout":
        from .timeouts import with_timeout
        return with_timeout
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
