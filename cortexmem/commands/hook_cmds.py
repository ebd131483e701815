"""Handlers for the host's hook events. Each reads hook JSON from stdin."""

from __future__ import annotations

from rich import print

from ..automation import (
    archive_transcript,
    build_restoration_context,
    evaluate_context,
    note_warning_threshold,
    reset_session_guard,
)
from .common import archive_scope, context_strip, format_archive_result, format_restoration

PREFIX = "[cyan]\\[Cortex][/cyan]"


def _progress(current: int, total: int) -> None:
    print(f"[dim]Embedding {current}/{total}...[/dim]")


def statusline_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    percent = hook.context_percent if hook and hook.cwd else 0
    project_id = hook.project_id if hook else None

    with context_from_path(db_path) as ctx:
        cfg = ctx.config
        if cfg.statusline_enabled:
            count = ctx.store.stats()["fragment_count"]
            print(f"[bright_red]∿∿[/bright_red] {count} {context_strip(percent)}")
            state = ctx.store.load_auto_save_state()
            threshold = cfg.context_warning_threshold
            if state.has_saved_this_session:
                print("[green]✓ Autosaved[/green] [yellow]⚠ Run /clear[/yellow]")
            elif threshold > 0 and percent >= threshold:
                note_warning_threshold(ctx, percent)
                print(f"[yellow]⚠ Context at {percent}%. Run /clear[/yellow]")
            elif state.has_reached_warning_threshold:
                print(
                    f"[yellow]⚠ Context at {state.warning_context_percent}%. Run /clear[/yellow]"
                )

        if percent > 0 and cfg.auto_clear_enabled and hook is not None:
            outcome = evaluate_context(
                ctx,
                context_percent=percent,
                transcript_path=hook.transcript_path,
                project_id=archive_scope(cfg, project_id, force_global=False),
            )
            if outcome.archive is not None and outcome.archive.archived > 0:
                print(
                    f"{PREFIX} Auto-saved {outcome.archive.archived} fragments. "
                    "Run /clear to continue."
                )


def session_start_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    project_id = hook.project_id if hook else None
    with context_from_path(db_path) as ctx:
        reset_session_guard(ctx)
        ctx.store.start_session(project_id)
        stats = ctx.store.project_stats(project_id) if project_id else None
        if stats and stats["fragment_count"] > 0:
            restoration = build_restoration_context(ctx, project_id)
            print(f"{PREFIX} {stats['fragment_count']} memories for [bold]{project_id}[/bold]")
            if restoration.has_content:
                ctx.store.record_restoration_used()
                print("\n[dim]--- Restoration Context ---[/dim]")
                print(format_restoration(restoration))
                print("[dim]---------------------------[/dim]")
        elif project_id:
            print(f"{PREFIX} Ready for [bold]{project_id}[/bold] (no memories yet)")
        else:
            print(f"{PREFIX} Session started")


def monitor_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    if hook is None:
        return
    with context_from_path(db_path) as ctx:
        ctx.store.update_context_percent(hook.context_percent)
        threshold = ctx.config.monitor_token_threshold
    if hook.context_percent >= threshold:
        print(
            f"{PREFIX} Context at {hook.context_percent}% - consider archiving with "
            "[cyan]cortexmem save[/cyan]"
        )


def context_check_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    if hook is None:
        return
    with context_from_path(db_path) as ctx:
        outcome = evaluate_context(
            ctx,
            context_percent=hook.context_percent,
            transcript_path=hook.transcript_path,
            project_id=archive_scope(ctx.config, hook.project_id, force_global=False),
        )
    if outcome.action == "none":
        return
    if outcome.archive is not None and outcome.archive.archived > 0:
        print(f"{PREFIX} Auto-saved {outcome.archive.archived} fragments")
    if outcome.action == "auto_clear":
        print(f"{PREFIX} Context at {outcome.context_percent}%. Smart compaction complete.")
    if outcome.restoration is not None:
        print("\n[cyan]=== Restoration Context ===[/cyan]")
        print(format_restoration(outcome.restoration))
        print("[cyan]===========================[/cyan]")


def pre_compact_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    with context_from_path(db_path) as ctx:
        cfg = ctx.config
        reset_session_guard(ctx)
        if not cfg.archive_auto_on_compact:
            return
        if hook is None or not hook.transcript_path:
            print(f"{PREFIX} No transcript available for archiving")
            return
        project_id = archive_scope(cfg, hook.project_id, force_global=False)
        print(f"{PREFIX} Auto-archiving before compact...")
        result = archive_transcript(
            ctx, hook.transcript_path, project_id=project_id, on_progress=_progress
        )
    print(
        f"{PREFIX} Archived {result.archived} fragments "
        f"({result.duplicates} duplicates skipped)"
    )


def smart_compact_cmd(*, context_from_path, read_input, db_path: str | None) -> None:
    hook = read_input()
    if hook is None or not hook.transcript_path:
        print("[red]\\[Cortex][/red] No transcript available for compaction")
        return
    print(f"{PREFIX} Smart compaction starting...")
    with context_from_path(db_path) as ctx:
        project_id = archive_scope(ctx.config, hook.project_id, force_global=False)
        ctx.store.current_session(project_id)
        result = archive_transcript(
            ctx, hook.transcript_path, project_id=project_id, on_progress=_progress
        )
        if result.archived > 0:
            ctx.store.record_save_point(hook.context_percent, result.archived)
        restoration = build_restoration_context(ctx, project_id)
        ctx.store.record_clear()
    print(format_archive_result(result))
    print("\n[cyan]=== Restoration Context ===[/cyan]")
    print(format_restoration(restoration))
    print("[cyan]===========================[/cyan]")
    print("\n[dim]Context saved and ready for clear. Use /clear to proceed.[/dim]")
