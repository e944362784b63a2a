"""Configuration for the session controller.

All settings have sensible defaults. Override via DIVERTER_* env vars
or the YAML/JSON files read by yaml_config.load_config().
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields
from typing import Any

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_MARKER = "BLOCKER_DIVERTER_DONE!"
DEFAULT_BLOCKERS_FILE = "./BLOCKERS.md"

# Optional async callback for controller events.
# Signature: async def callback(event: dict) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]


PACKAGE_LOGGER = "blocker_diverter"


def apply_log_level(config: DiverterConfig) -> int:
    """Set the package logger to config.log_level. Unknown names mean INFO."""
    level = getattr(logging, str(config.log_level).upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    return level


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set, swallowing its errors."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        logger.debug("Event callback failed for %s", event.get("type"), exc_info=True)


@dataclass
class DiverterConfig:
    """Session controller configuration."""

    # Global toggle. A disabled plugin registers no diversion behavior.
    enabled: bool = True
    # Initial divert_blockers value for new sessions.
    # /blockers.on and /blockers.off override it per session.
    default_divert_blockers: bool = True

    # Markdown log of recorded blockers, relative to the project root.
    blockers_file: str = DEFAULT_BLOCKERS_FILE
    max_blockers_per_run: int = 50

    # Identical (question, context) pairs are suppressed for this long.
    cooldown_ms: int = 30_000

    # Reprompt rate limit: at most max_reprompts continuation prompts
    # per fixed window of reprompt_window_ms.
    max_reprompts: int = 5
    reprompt_window_ms: int = 300_000

    # Literal string the agent says when all autonomous work is done.
    completion_marker: str = DEFAULT_COMPLETION_MARKER

    # Budget for each prompt-injection call into the host.
    prompt_timeout_ms: int = 30_000

    # Logging
    log_level: str = "INFO"

    def validate(self) -> DiverterConfig:
        """Check every constraint. Raises ConfigError on the first violation."""
        if not 1 <= self.max_blockers_per_run <= 100:
            raise ConfigError(
                "max_blockers_per_run", self.max_blockers_per_run,
                "must be between 1 and 100",
            )
        if self.cooldown_ms < 1000:
            raise ConfigError("cooldown_ms", self.cooldown_ms, "must be >= 1000")
        if self.max_reprompts < 1:
            raise ConfigError("max_reprompts", self.max_reprompts, "must be >= 1")
        if self.reprompt_window_ms < 60_000:
            raise ConfigError(
                "reprompt_window_ms", self.reprompt_window_ms, "must be >= 60000",
            )
        if not isinstance(self.completion_marker, str) or not self.completion_marker:
            raise ConfigError(
                "completion_marker", self.completion_marker,
                "must be a non-empty string",
            )
        if self.prompt_timeout_ms < 1000:
            raise ConfigError(
                "prompt_timeout_ms", self.prompt_timeout_ms, "must be >= 1000",
            )
        if not isinstance(self.blockers_file, str) or not self.blockers_file:
            raise ConfigError(
                "blockers_file", self.blockers_file, "must be a non-empty path",
            )
        return self

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_env(cls) -> DiverterConfig:
        """Load configuration from DIVERTER_* environment variables."""
        diverter_vars = {
            k: v for k, v in os.environ.items() if k.startswith("DIVERTER_")
        }
        if diverter_vars:
            logger.info(
                "DiverterConfig.from_env: DIVERTER_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(diverter_vars.items())),
            )
        else:
            logger.debug(
                "DiverterConfig.from_env: no DIVERTER_* env vars set, using defaults"
            )

        config = cls(
            enabled=_env_bool("DIVERTER_ENABLED", cls.enabled),
            default_divert_blockers=_env_bool(
                "DIVERTER_DEFAULT_DIVERT", cls.default_divert_blockers
            ),
            blockers_file=os.getenv(
                "DIVERTER_BLOCKERS_FILE", cls.blockers_file
            ),
            max_blockers_per_run=int(os.getenv(
                "DIVERTER_MAX_BLOCKERS", str(cls.max_blockers_per_run)
            )),
            cooldown_ms=int(os.getenv(
                "DIVERTER_COOLDOWN_MS", str(cls.cooldown_ms)
            )),
            max_reprompts=int(os.getenv(
                "DIVERTER_MAX_REPROMPTS", str(cls.max_reprompts)
            )),
            reprompt_window_ms=int(os.getenv(
                "DIVERTER_REPROMPT_WINDOW_MS", str(cls.reprompt_window_ms)
            )),
            completion_marker=os.getenv(
                "DIVERTER_COMPLETION_MARKER", cls.completion_marker
            ),
            prompt_timeout_ms=int(os.getenv(
                "DIVERTER_PROMPT_TIMEOUT_MS", str(cls.prompt_timeout_ms)
            )),
            log_level=os.getenv("DIVERTER_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "DiverterConfig.from_env: max_reprompts=%d window_ms=%d "
            "cooldown_ms=%d log_level=%s",
            config.max_reprompts, config.reprompt_window_ms,
            config.cooldown_ms, config.log_level,
        )
        return config.validate()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in {"1", "true", "yes", "on"}
