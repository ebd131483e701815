from __future__ import annotations

import dataclasses
import json
import os

import typer
from rich import print
from rich.markup import escape

from ..automation import archive_content, archive_transcript
from ..retrieval import hybrid_search
from .common import archive_scope, format_archive_result, time_ago


def save_cmd(
    *,
    context_from_path,
    resolve_project,
    read_input,
    db_path: str | None,
    transcript: str | None,
    project: str | None,
    force_global: bool,
) -> None:
    """Archive a transcript's assistant turns into the fragment store."""

    hook = read_input() if transcript is None else None
    transcript_path = transcript or (hook.transcript_path if hook else None)
    if not transcript_path:
        print("[red]No transcript path given and none found on stdin[/red]")
        raise typer.Exit(code=1)
    cwd = hook.cwd if hook and hook.cwd else os.getcwd()

    with context_from_path(db_path) as ctx:
        project_id = archive_scope(
            ctx.config,
            resolve_project(cwd, project, all_projects=False),
            force_global=force_global,
        )
        result = archive_transcript(ctx, transcript_path, project_id=project_id)
        if result.archived > 0:
            ctx.store.current_session(project_id)
            ctx.store.record_save_point(hook.context_percent if hook else 0, result.archived)
    print(format_archive_result(result))
    print(f"Scope: {project_id or 'global'}")


def recall_cmd(
    *,
    context_from_path,
    resolve_project,
    db_path: str | None,
    query: str,
    limit: int,
    project: str | None,
    all_projects: bool,
) -> None:
    """Search fragments with hybrid vector and keyword ranking."""

    with context_from_path(db_path) as ctx:
        scope = resolve_project(os.getcwd(), project, all_projects=all_projects)
        results = hybrid_search(ctx.store, ctx.embedder, query, scope=scope, limit=limit)
        if ctx.store.active_session() is not None:
            ctx.store.record_recall()
    if not results:
        print(f"No memories found for {escape(query)!r}")
        return
    for item in results:
        print(
            f"[bold][{item.id}][/bold] ({item.provenance}, {time_ago(item.timestamp)}, "
            f"{item.project_id or 'global'}) score={item.score:.4f}\n{escape(item.content)}\n"
        )


def recent_cmd(
    *,
    context_from_path,
    resolve_project,
    db_path: str | None,
    limit: int,
    project: str | None,
    all_projects: bool,
) -> None:
    """Show the most recent fragments."""

    with context_from_path(db_path) as ctx:
        scope = resolve_project(os.getcwd(), project, all_projects=all_projects)
        fragments = ctx.store.list_recent(scope, limit)
    for fragment in fragments:
        print(
            f"[bold][{fragment.id}][/bold] ({time_ago(fragment.timestamp)}, "
            f"{fragment.project_id or 'global'})\n{escape(fragment.content)}\n"
        )


def show_cmd(*, context_from_path, db_path: str | None, fragment_id: int) -> None:
    """Print a fragment as JSON."""

    with context_from_path(db_path) as ctx:
        fragment = ctx.store.get(fragment_id)
    if fragment is None:
        print(f"[red]Fragment {fragment_id} not found[/red]")
        raise typer.Exit(code=1)
    print(escape(json.dumps(dataclasses.asdict(fragment), indent=2)))


def forget_cmd(*, context_from_path, db_path: str | None, fragment_id: int) -> None:
    """Delete a fragment by id."""

    with context_from_path(db_path) as ctx:
        deleted = ctx.store.delete(fragment_id)
    if not deleted:
        print(f"[red]Fragment {fragment_id} not found[/red]")
        raise typer.Exit(code=1)
    print(f"Fragment {fragment_id} deleted")


def forget_project_cmd(*, context_from_path, db_path: str | None, project: str | None) -> None:
    """Delete every fragment of a project (or the global scope)."""

    with context_from_path(db_path) as ctx:
        deleted = ctx.store.delete_by_project(project)
    print(f"Deleted {deleted} fragments from {project or 'global'}")


def remember_cmd(
    *,
    context_from_path,
    resolve_project,
    db_path: str | None,
    text: str,
    context: str | None,
    project: str | None,
    force_global: bool,
) -> None:
    """Store one fragment verbatim."""

    if not text.strip():
        print("[red]Nothing to remember[/red]")
        raise typer.Exit(code=1)
    with context_from_path(db_path) as ctx:
        project_id = archive_scope(
            ctx.config,
            resolve_project(os.getcwd(), project, all_projects=False),
            force_global=force_global,
        )
        result = archive_content(ctx, text, project_id=project_id, context=context)
    if result.duplicates:
        print("Already stored (duplicate)")
        return
    print(f"Stored fragment {result.fragment_ids[0]} in {project_id or 'global'}")
