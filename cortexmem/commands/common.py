from __future__ import annotations

import datetime as dt
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich import print
from rich.markup import escape

from ..automation import ArchiveResult, RestorationContext
from ..config import CortexConfig, load_config, read_config_file
from ..context import MemoryContext, open_context
from ..store.utils import parse_iso8601, project_basename


@contextmanager
def context_from_path(db_path: str | None) -> Iterator[MemoryContext]:
    with open_context(load_config(), db_path=db_path) as ctx:
        yield ctx


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def resolve_project_for_cli(cwd: str, project: str | None, *, all_projects: bool) -> str | None:
    if all_projects:
        return None
    if project:
        return project
    env_project = os.environ.get("CORTEX_PROJECT")
    if env_project:
        return env_project
    return project_basename(cwd) or None


def archive_scope(
    config: CortexConfig, project_id: str | None, *, force_global: bool
) -> str | None:
    if force_global or not config.archive_project_scope:
        return None
    return project_id


def time_ago(timestamp: str, now: dt.datetime | None = None) -> str:
    parsed = parse_iso8601(timestamp)
    if parsed is None:
        return timestamp
    seconds = ((now or dt.datetime.now(dt.UTC)) - parsed).total_seconds()
    minutes = int(seconds // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 60 * 24:
        return f"{minutes // 60}h ago"
    if minutes < 60 * 24 * 7:
        return f"{minutes // (60 * 24)}d ago"
    return parsed.date().isoformat()


def format_archive_result(result: ArchiveResult) -> str:
    lines = [
        "[bold]Archive complete[/bold]",
        f"- Archived:   {result.archived} fragments",
        f"- Skipped:    {result.skipped} (too short/noise)",
        f"- Duplicates: {result.duplicates} (already stored)",
    ]
    reasons = ", ".join(f"{name}={count}" for name, count in result.discarded.items() if count)
    if reasons:
        lines.append(f"- Skip reasons: {reasons}")
    return "\n".join(lines)


def format_restoration(restoration: RestorationContext) -> str:
    if not restoration.has_content:
        return restoration.summary
    lines = [restoration.summary, ""]
    for index, fragment in enumerate(restoration.fragments, start=1):
        lines.append(f"[{index}] ({time_ago(fragment.timestamp)})")
        lines.append(escape(fragment.content))
        lines.append("")
    lines.append(f"~{restoration.estimated_tokens} tokens")
    return "\n".join(lines)


def context_strip(percent: int) -> str:
    """Five circles, one per 20% of the context window."""
    filled = min(5, max(0, round(percent / 100 * 5)))
    if percent < 70:
        color = "bright_red"
    elif percent < 85:
        color = "yellow"
    else:
        color = "red"
    return f"[{color}]{'●' * filled}[/{color}][dim]{'○' * (5 - filled)}[/dim] {percent}%"


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    return f"{size / 1024 / 1024 / 1024:.1f} GB"
