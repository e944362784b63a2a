from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from blocker_diverter.adapters.blockers_file import (
    append_blocker,
    format_blocker_entry,
    get_blocker_count,
    read_blockers,
    rotate_if_needed,
    sanitize_markdown,
    validate_path,
)
from blocker_diverter.engine.errors import PathTraversalError
from blocker_diverter.engine.models import Blocker, BlockerCategory


def _blocker(n: int = 1, **overrides) -> Blocker:
    fields = dict(
        id=f"1700000000000-ses_1-abc{n:03d}",
        timestamp="2026-02-12T10:00:00.000Z",
        session_id="ses_1",
        category=BlockerCategory.ARCHITECTURE,
        question=f"Which framework to use? ({n})",
        context="Task: #3 | Files: src/auth.py:45",
    )
    fields.update(overrides)
    return Blocker(**fields)


def test_format_entry_layout() -> None:
    entry = format_blocker_entry(_blocker())
    assert entry.startswith("\n## Blocker #1700000000000-ses_1-abc001\n")
    assert "**Time:** 2026-02-12T10:00:00.000Z\n" in entry
    assert "**Session:** ses_1\n" in entry
    assert "**Category:** architecture\n" in entry
    assert "**Blocks Progress:** Yes\n" in entry
    assert "\n### Question\nWhich framework to use? (1)\n" in entry
    assert "\n### Context\nTask: #3 | Files: src/auth.py:45\n" in entry
    assert entry.endswith("\n---\n")


def test_format_entry_soft_blocker_sections() -> None:
    entry = format_blocker_entry(_blocker(
        blocks_progress=False,
        options=("RS256", "HS256", "EdDSA"),
        chosen_option="RS256",
        chosen_reasoning="Asymmetric keys",
        context="",
    ))
    assert "**Blocks Progress:** No\n" in entry
    assert "### Context\nNo additional context\n" in entry
    assert "### Options Considered\n1. RS256\n2. HS256\n3. EdDSA\n" in entry
    assert "### Chosen Option\nRS256\n" in entry
    assert "### Reasoning\nAsymmetric keys\n" in entry


def test_sanitize_markdown_neutralizes_fake_headers_and_fences() -> None:
    text = "ok\n## Blocker #999 fake\n```bash\nrm -rf /\n```"
    out = sanitize_markdown(text)
    assert "\n## Blocker #" not in out
    assert "\\## Blocker #999" in out
    assert "```" not in out


def test_validate_path_inside_project(tmp_path: Path) -> None:
    resolved = validate_path("./notes/BLOCKERS.md", tmp_path)
    assert resolved == (tmp_path / "notes" / "BLOCKERS.md").resolve()


@pytest.mark.parametrize("bad", ["../outside.md", "/etc/passwd", "a/../../x.md"])
def test_validate_path_rejects_traversal(tmp_path: Path, bad: str) -> None:
    with pytest.raises(PathTraversalError, match="directory traversal"):
        validate_path(bad, tmp_path)


def test_validate_path_rejects_sibling_prefix(tmp_path: Path) -> None:
    project = tmp_path / "proj"
    project.mkdir()
    with pytest.raises(PathTraversalError):
        validate_path(str(tmp_path / "proj-evil" / "b.md"), project)


def test_append_creates_file_and_directories(tmp_path: Path) -> None:
    assert append_blocker("logs/BLOCKERS.md", _blocker(), tmp_path) is True
    content = (tmp_path / "logs" / "BLOCKERS.md").read_text(encoding="utf-8")
    assert "## Blocker #1700000000000-ses_1-abc001" in content


def test_append_traversal_raises(tmp_path: Path) -> None:
    with pytest.raises(PathTraversalError):
        append_blocker("../evil.md", _blocker(), tmp_path)


def test_append_io_failure_returns_false(tmp_path: Path) -> None:
    (tmp_path / "BLOCKERS.md").mkdir()
    assert append_blocker("BLOCKERS.md", _blocker(), tmp_path) is False


def test_count(tmp_path: Path) -> None:
    assert get_blocker_count("BLOCKERS.md", tmp_path) == 0
    for n in range(3):
        append_blocker("BLOCKERS.md", _blocker(n), tmp_path)
    assert get_blocker_count("BLOCKERS.md", tmp_path) == 3


def test_count_ignores_injected_headers(tmp_path: Path) -> None:
    append_blocker("BLOCKERS.md", _blocker(question="q\n## Blocker #fake"), tmp_path)
    assert get_blocker_count("BLOCKERS.md", tmp_path) == 1


def test_rotate_when_full(tmp_path: Path) -> None:
    for n in range(3):
        append_blocker("BLOCKERS.md", _blocker(n), tmp_path)
    now = datetime(2026, 2, 12, 10, 30, 5, tzinfo=timezone.utc)
    backup = rotate_if_needed("BLOCKERS.md", 3, tmp_path, now=now)
    assert backup == (tmp_path / "BLOCKERS-2026-02-12T10-30-05.md").resolve()
    assert backup.exists()
    assert not (tmp_path / "BLOCKERS.md").exists()


def test_rotate_not_needed(tmp_path: Path) -> None:
    append_blocker("BLOCKERS.md", _blocker(), tmp_path)
    assert rotate_if_needed("BLOCKERS.md", 5, tmp_path) is None
    assert rotate_if_needed("MISSING.md", 0, tmp_path) is None
    assert (tmp_path / "BLOCKERS.md").exists()


def test_read_blockers_parses_entries_back(tmp_path: Path) -> None:
    hard = _blocker(1, question="Line one\n```code```")
    soft = _blocker(
        2,
        category=BlockerCategory.QUESTION,
        blocks_progress=False,
        options=("A", "B"),
        chosen_option="B",
        chosen_reasoning="simpler",
        context="",
    )
    append_blocker("BLOCKERS.md", hard, tmp_path)
    append_blocker("BLOCKERS.md", soft, tmp_path)

    parsed = read_blockers("BLOCKERS.md", tmp_path)
    assert [b.id for b in parsed] == [hard.id, soft.id]
    assert parsed[0].question == "Line one\n```code```"
    assert parsed[0].category == BlockerCategory.ARCHITECTURE
    assert parsed[0].blocks_progress is True
    assert parsed[1].context == ""
    assert parsed[1].options == ("A", "B")
    assert parsed[1].chosen_option == "B"
    assert parsed[1].chosen_reasoning == "simpler"
    assert parsed[1].is_soft


def test_read_blockers_missing_file(tmp_path: Path) -> None:
    assert read_blockers("BLOCKERS.md", tmp_path) == []
