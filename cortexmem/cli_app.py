from __future__ import annotations

import logging
from contextlib import AbstractContextManager

import typer
from rich import print

from . import __version__
from .commands.common import context_from_path, resolve_project_for_cli
from .commands.hook_cmds import (
    context_check_cmd,
    monitor_cmd,
    pre_compact_cmd,
    session_start_cmd,
    smart_compact_cmd,
    statusline_cmd,
)
from .commands.maintenance_cmds import (
    analytics_cmd,
    check_db_cmd,
    configure_cmd,
    embed_probe_cmd,
    stats_cmd,
)
from .commands.memory_cmds import (
    forget_cmd,
    forget_project_cmd,
    recall_cmd,
    recent_cmd,
    remember_cmd,
    save_cmd,
    show_cmd,
)
from .config import load_config
from .context import MemoryContext
from .hook_input import HookInput, read_hook_input

app = typer.Typer(help="cortexmem: persistent memory fragments for coding assistant sessions")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )


def _context(db_path: str | None) -> AbstractContextManager[MemoryContext]:
    return context_from_path(db_path)


def _resolve_project(cwd: str, project: str | None, all_projects: bool = False) -> str | None:
    return resolve_project_for_cli(cwd, project, all_projects=all_projects)


def _read_input() -> HookInput | None:
    return read_hook_input()


@app.command()
def save(
    transcript: str = typer.Argument(None, help="Transcript JSONL path (defaults to hook stdin)"),
    project: str = typer.Option(None, help="Project identifier (defaults to cwd name)"),
    force_global: bool = typer.Option(False, "--global", help="Store without a project scope"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Archive a transcript into the fragment store."""
    save_cmd(
        context_from_path=_context,
        resolve_project=_resolve_project,
        read_input=_read_input,
        db_path=db_path,
        transcript=transcript,
        project=project,
        force_global=force_global,
    )


@app.command()
def recall(
    query: str,
    limit: int = typer.Option(5, help="Max results"),
    project: str = typer.Option(None, help="Project identifier (defaults to cwd name)"),
    all_projects: bool = typer.Option(False, "--all", help="Search across all projects"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Search memories with hybrid semantic and keyword ranking."""
    recall_cmd(
        context_from_path=_context,
        resolve_project=_resolve_project,
        db_path=db_path,
        query=query,
        limit=limit,
        project=project,
        all_projects=all_projects,
    )


@app.command()
def recent(
    limit: int = typer.Option(5, help="Max results"),
    project: str = typer.Option(None, help="Project identifier (defaults to cwd name)"),
    all_projects: bool = typer.Option(False, "--all", help="Show all projects"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show recent memories."""
    recent_cmd(
        context_from_path=_context,
        resolve_project=_resolve_project,
        db_path=db_path,
        limit=limit,
        project=project,
        all_projects=all_projects,
    )


@app.command()
def show(
    fragment_id: int, db_path: str = typer.Option(None, help="Path to SQLite database")
) -> None:
    """Print a memory fragment as JSON."""
    show_cmd(context_from_path=_context, db_path=db_path, fragment_id=fragment_id)


@app.command()
def forget(
    fragment_id: int, db_path: str = typer.Option(None, help="Path to SQLite database")
) -> None:
    """Delete a memory fragment by id."""
    forget_cmd(context_from_path=_context, db_path=db_path, fragment_id=fragment_id)


@app.command("forget-project")
def forget_project(
    project: str = typer.Argument(None, help="Project identifier (omit for global fragments)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete every memory fragment of a project."""
    forget_project_cmd(context_from_path=_context, db_path=db_path, project=project)


@app.command()
def remember(
    text: str,
    context: str = typer.Option(None, help="Extra context appended to the fragment"),
    project: str = typer.Option(None, help="Project identifier (defaults to cwd name)"),
    force_global: bool = typer.Option(False, "--global", help="Store without a project scope"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Manually store a memory fragment."""
    remember_cmd(
        context_from_path=_context,
        resolve_project=_resolve_project,
        db_path=db_path,
        text=text,
        context=context,
        project=project,
        force_global=force_global,
    )


@app.command()
def stats(
    project: str = typer.Option(None, help="Project identifier (defaults to cwd name)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show database and project statistics."""
    stats_cmd(
        context_from_path=_context,
        resolve_project=_resolve_project,
        db_path=db_path,
        project=project,
    )


@app.command()
def analytics(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show session analytics."""
    analytics_cmd(context_from_path=_context, db_path=db_path)


@app.command("check-db")
def check_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Verify schema, integrity and embedding dimension."""
    check_db_cmd(context_from_path=_context, db_path=db_path)


@app.command("test-embed")
def test_embed(text: str = typer.Argument("hello world", help="Text to embed")) -> None:
    """Load the embedding model and embed a sample text."""
    embed_probe_cmd(load_config=load_config, text=text)


@app.command()
def configure(preset: str = typer.Argument(..., help="full, essential or minimal")) -> None:
    """Write a configuration preset."""
    configure_cmd(preset=preset)


@app.command()
def statusline(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Statusline hook: fragment count, context strip and warnings."""
    statusline_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command("session-start")
def session_start(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """SessionStart hook: reset the save guard and print restoration context."""
    session_start_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command()
def monitor(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Monitor hook: track peak context and warn above the threshold."""
    monitor_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command("context-check")
def context_check(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """PostToolUse hook: auto-save or auto-clear based on context usage."""
    context_check_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command("pre-compact")
def pre_compact(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """PreCompact hook: archive the transcript before compaction."""
    pre_compact_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command("smart-compact")
def smart_compact(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Archive, record a clear and print restoration context."""
    smart_compact_cmd(context_from_path=_context, read_input=_read_input, db_path=db_path)


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
