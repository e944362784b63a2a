"""YAML configuration loader.

Reads one config file from the standard plugin locations. Existing
JSON config files load unchanged, since YAML is a superset of JSON,
and camelCase keys map onto DiverterConfig fields.

Lookup order (first file that loads wins):
    <project>/.opencode/blocker-diverter.yaml
    <project>/.opencode/blocker-diverter.yml
    <project>/.opencode/blocker-diverter.json
    ~/.config/opencode/blocker-diverter.yaml
    ~/.config/opencode/blocker-diverter.yml
    ~/.config/opencode/blocker-diverter.json

Example YAML:
    enabled: true
    blockersFile: ./notes/BLOCKERS.md
    maxBlockersPerRun: 30
    cooldownMs: 60000
    maxReprompts: 3
    repromptWindowMs: 600000
    completionMarker: ALL_WORK_DONE
    promptTimeoutMs: 15000
"""
from __future__ import annotations

import logging
import re
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from .config import DEFAULT_BLOCKERS_FILE, DiverterConfig
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_BASENAME = "blocker-diverter"
CONFIG_SUFFIXES = (".yaml", ".yml", ".json")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# camelCase spellings that do not map 1:1 onto a field name.
_KEY_ALIASES: dict[str, str] = {
    "defaultDivertBlockers": "default_divert_blockers",
}


def _user_config_dir() -> Path:
    """Return the global config directory (~/.config/opencode)."""
    return Path.home() / ".config" / "opencode"


def candidate_paths(project_dir: str | Path) -> list[Path]:
    """Config file candidates, highest priority first."""
    project_dir = Path(project_dir)
    project_base = project_dir / ".opencode" / CONFIG_BASENAME
    user_base = _user_config_dir() / CONFIG_BASENAME
    return [
        base.with_name(base.name + suffix)
        for base in (project_base, user_base)
        for suffix in CONFIG_SUFFIXES
    ]


def _normalize_key(key: str) -> str:
    if key in _KEY_ALIASES:
        return _KEY_ALIASES[key]
    return _CAMEL_RE.sub("_", key).lower()


def config_from_dict(raw: dict[str, Any]) -> DiverterConfig:
    """Build and validate a DiverterConfig from a raw mapping.

    Unknown keys are ignored with a warning. Wrong value types and
    constraint violations raise ConfigError.
    """
    field_types = {f.name: f.default for f in fields(DiverterConfig)}
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = _normalize_key(str(key))
        if name not in field_types:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        expected = type(field_types[name])
        # bool is an int subclass; reject True/False for numeric fields
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigError(name, value, "must be an integer")
        if expected is bool and not isinstance(value, bool):
            raise ConfigError(name, value, "must be a boolean")
        if expected is str and not isinstance(value, str):
            raise ConfigError(name, value, "must be a string")
        values[name] = value
    return DiverterConfig(**values).validate()


def _load_config_file(path: Path) -> DiverterConfig | None:
    """Load one config file. Returns None if missing or invalid."""
    if not path.exists():
        return None
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to load config from %s: %s", path, exc)
        return None

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        logger.warning(
            "Config validation failed for %s: top level must be a mapping", path,
        )
        return None

    try:
        return config_from_dict(raw)
    except ConfigError as exc:
        logger.warning("Config validation failed for %s: %s", path, exc)
        return None


def resolve_blockers_file(blockers_file: str, project_dir: str | Path) -> str:
    """Resolve blockers_file to an absolute path inside project_dir.

    Paths that escape the project (absolute or via ``..``) fall back
    to the default file at the project root.
    """
    root = Path(project_dir).resolve()
    candidate = Path(blockers_file)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        logger.warning(
            "blockers_file %s resolves outside %s, using default", blockers_file, root,
        )
        return str((root / DEFAULT_BLOCKERS_FILE).resolve())
    return str(resolved)


def load_config(project_dir: str | Path) -> DiverterConfig:
    """Load config from the standard locations, falling back to defaults.

    The returned config always has an absolute, validated blockers_file.
    """
    checked = candidate_paths(project_dir)
    for path in checked:
        config = _load_config_file(path)
        if config is not None:
            logger.info("Loaded config from %s", path)
            break
    else:
        logger.info(
            "No config found, using defaults (checked: %s)",
            ", ".join(str(p) for p in checked),
        )
        config = DiverterConfig()

    config.blockers_file = resolve_blockers_file(config.blockers_file, project_dir)
    return config
