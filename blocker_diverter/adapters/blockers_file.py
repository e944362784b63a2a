"""Markdown log of recorded blockers.

One entry per blocker, appended to a file inside the project:

    ## Blocker #<id>
    **Time:** <iso timestamp>
    **Session:** <session id>
    **Category:** <category>
    **Blocks Progress:** Yes|No

    ### Question
    ...

    ### Context
    ...

    ---

Every public function validates its path first and raises
PathTraversalError for anything outside the project. Other I/O
failures are logged and reported through the return value.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from ..engine.errors import PathTraversalError
from ..engine.models import Blocker, BlockerCategory, category_text

logger = logging.getLogger(__name__)

NO_CONTEXT = "No additional context"

_HEADER_RE = re.compile(r"^## Blocker #", re.MULTILINE)
_INJECTED_HEADER_RE = re.compile(r"^(#{1,6})\s+Blocker\s+#", re.MULTILINE | re.IGNORECASE)
_ESCAPED_HEADER_RE = re.compile(r"^\\(#{1,6}) Blocker #", re.MULTILINE)
_FIELD_RE = re.compile(r"^\*\*(?P<name>[^*]+):\*\* ?(?P<value>.*)$")
_OPTION_RE = re.compile(r"^\d+\.\s+")


def validate_path(file_path: str | Path, project_dir: str | Path) -> Path:
    """Resolve file_path against project_dir, refusing to leave it."""
    root = Path(project_dir).resolve()
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        raise PathTraversalError(str(file_path), str(root)) from None
    return resolved


def sanitize_markdown(text: str) -> str:
    """Neutralize text that would fake a new entry or open a code fence."""
    text = _INJECTED_HEADER_RE.sub(r"\\\1 Blocker #", text)
    return text.replace("```", "\\`\\`\\`")


def _unescape_markdown(text: str) -> str:
    text = _ESCAPED_HEADER_RE.sub(r"\1 Blocker #", text)
    return text.replace("\\`\\`\\`", "```")


def format_blocker_entry(blocker: Blocker) -> str:
    entry = (
        f"\n## Blocker #{blocker.id}\n"
        f"**Time:** {blocker.timestamp}\n"
        f"**Session:** {blocker.session_id}\n"
        f"**Category:** {category_text(blocker.category)}\n"
        f"**Blocks Progress:** {'Yes' if blocker.blocks_progress else 'No'}\n"
        f"\n### Question\n{sanitize_markdown(blocker.question)}\n"
        f"\n### Context\n{sanitize_markdown(blocker.context or NO_CONTEXT)}\n"
    )

    if blocker.options:
        entry += "\n### Options Considered\n"
        for idx, option in enumerate(blocker.options, start=1):
            entry += f"{idx}. {sanitize_markdown(option)}\n"

    if blocker.chosen_option:
        entry += f"\n### Chosen Option\n{sanitize_markdown(blocker.chosen_option)}\n"

    if blocker.chosen_reasoning:
        entry += f"\n### Reasoning\n{sanitize_markdown(blocker.chosen_reasoning)}\n"

    entry += "\n---\n"
    return entry


def append_blocker(
    file_path: str | Path, blocker: Blocker, project_dir: str | Path,
) -> bool:
    """Append one entry, creating the file and its parent directories.

    Returns False when the write fails.
    """
    resolved = validate_path(file_path, project_dir)
    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        with resolved.open("a", encoding="utf-8") as fh:
            fh.write(format_blocker_entry(blocker))
    except OSError as exc:
        logger.error("Failed to append blocker %s to %s: %s", blocker.id, resolved, exc)
        return False
    return True


def get_blocker_count(file_path: str | Path, project_dir: str | Path) -> int:
    """Number of entry headers in the file; 0 when missing or unreadable."""
    resolved = validate_path(file_path, project_dir)
    if not resolved.exists():
        return 0
    try:
        content = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to count blockers in %s: %s", resolved, exc)
        return 0
    return len(_HEADER_RE.findall(content))


def backup_path_for(resolved: Path, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%S")
    base = resolved.name
    if base.endswith(".md"):
        base = base[: -len(".md")]
    return resolved.with_name(f"{base}-{stamp}.md")


def rotate_if_needed(
    file_path: str | Path,
    max_count: int,
    project_dir: str | Path,
    now: datetime | None = None,
) -> Path | None:
    """Move the file to a timestamped backup once it holds max_count entries.

    Returns the backup path, or None when no rotation happened.
    """
    resolved = validate_path(file_path, project_dir)
    count = get_blocker_count(resolved, project_dir)
    if count < max_count or not resolved.exists():
        return None

    backup = backup_path_for(resolved, now)
    try:
        resolved.rename(backup)
    except OSError as exc:
        logger.error("Failed to rotate %s: %s", resolved, exc)
        return None
    logger.info("Rotated %s (%d blockers) to %s", resolved, count, backup)
    return backup


def _parse_entry(body: str) -> Blocker | None:
    lines = body.splitlines()
    if not lines:
        return None
    blocker_id = lines[0].strip()
    meta: dict[str, str] = {}
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None

    for line in lines[1:]:
        if line.strip() == "---":
            break
        if line.startswith("### "):
            current = sections.setdefault(line[4:].strip(), [])
            continue
        if current is None:
            match = _FIELD_RE.match(line)
            if match:
                meta[match.group("name")] = match.group("value").strip()
            continue
        current.append(line)

    def text(name: str) -> str | None:
        if name not in sections:
            return None
        return _unescape_markdown("\n".join(sections[name]).strip())

    context = text("Context") or ""
    if context == NO_CONTEXT:
        context = ""

    options = None
    if "Options Considered" in sections:
        options = tuple(
            _unescape_markdown(_OPTION_RE.sub("", line, count=1))
            for line in sections["Options Considered"]
            if line.strip()
        )

    raw_category = meta.get("Category", BlockerCategory.OTHER.value)
    try:
        category: BlockerCategory | str = BlockerCategory(raw_category)
    except ValueError:
        category = raw_category

    return Blocker(
        id=blocker_id,
        timestamp=meta.get("Time", ""),
        session_id=meta.get("Session", ""),
        category=category,
        question=text("Question") or "",
        context=context,
        blocks_progress=meta.get("Blocks Progress", "Yes") != "No",
        options=options,
        chosen_option=text("Chosen Option"),
        chosen_reasoning=text("Reasoning"),
    )


def read_blockers(file_path: str | Path, project_dir: str | Path) -> list[Blocker]:
    """Parse the entries of a blockers file back into Blocker records."""
    resolved = validate_path(file_path, project_dir)
    if not resolved.exists():
        return []
    content = resolved.read_text(encoding="utf-8")
    blockers = []
    for chunk in _HEADER_RE.split(content)[1:]:
        blocker = _parse_entry(chunk)
        if blocker is not None:
            blockers.append(blocker)
    return blockers
