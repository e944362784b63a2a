"""Inspection CLI for a project's blockers file.

Usage:
    blocker-diverter list
    blocker-diverter count --project path/to/repo
    blocker-diverter rotate --max 50
    blocker-diverter config
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .adapters.blockers_file import get_blocker_count, read_blockers, rotate_if_needed
from .engine.config import DiverterConfig
from .engine.errors import DiverterError
from .engine.models import category_text
from .engine.yaml_config import load_config, resolve_blockers_file

QUESTION_WIDTH = 80


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blocker-diverter",
        description="Inspect and maintain the blockers logged by autonomous sessions",
    )
    parser.add_argument(
        "--project", "-p",
        default=".",
        help="Project directory (default: current dir)",
    )
    parser.add_argument(
        "--file", "-f",
        default=None,
        help="Blockers file, relative to the project (default: from config)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List recorded blockers")
    sub.add_parser("count", help="Print the number of recorded blockers")
    rotate = sub.add_parser("rotate", help="Archive the file once it is full")
    rotate.add_argument(
        "--max",
        type=int,
        default=None,
        dest="max_count",
        help="Rotate at this many entries (default: maxBlockersPerRun)",
    )
    sub.add_parser("config", help="Show the effective configuration")
    return parser


def _truncate(text: str, width: int = QUESTION_WIDTH) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[:width] + "..."


def _cmd_list(console: Console, blockers_file: str, project: Path) -> int:
    blockers = read_blockers(blockers_file, project)
    if not blockers:
        console.print("No blockers recorded")
        return 0
    table = Table(title=f"Blockers ({len(blockers)})")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Category")
    table.add_column("Blocks")
    table.add_column("Question")
    for index, blocker in enumerate(blockers, start=1):
        table.add_row(
            str(index),
            blocker.timestamp,
            category_text(blocker.category),
            "yes" if blocker.blocks_progress else "no",
            _truncate(blocker.question),
        )
    console.print(table)
    return 0


def _cmd_config(console: Console, config: DiverterConfig) -> int:
    table = Table(title="Effective configuration")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in asdict(config).items():
        table.add_row(key, str(value))
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    console = Console(markup=False, highlight=False, soft_wrap=True)
    project = Path(args.project)
    if not project.is_dir():
        console.print(f"Error: project directory not found: {args.project}")
        return 1

    config = load_config(project)
    blockers_file = config.blockers_file
    if args.file is not None:
        blockers_file = resolve_blockers_file(args.file, project)

    try:
        if args.command == "list":
            return _cmd_list(console, blockers_file, project)
        if args.command == "count":
            console.print(str(get_blocker_count(blockers_file, project)))
            return 0
        if args.command == "rotate":
            max_count = args.max_count or config.max_blockers_per_run
            backup = rotate_if_needed(blockers_file, max_count, project)
            if backup is None:
                console.print("No rotation needed")
            else:
                console.print(f"Rotated to {backup}")
            return 0
        if args.command == "config":
            return _cmd_config(console, config)
    except DiverterError as exc:
        console.print(f"Error: {exc}")
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
