from __future__ import annotations

import os

import typer
from rich import print

from ..config import CONFIG_PRESETS, apply_preset, get_config_path
from ..semantic import EmbeddingError, embed_query, get_embedding_client
from .common import format_bytes, read_config_or_exit


def stats_cmd(
    *, context_from_path, resolve_project, db_path: str | None, project: str | None
) -> None:
    with context_from_path(db_path) as ctx:
        overall = ctx.store.stats()
        scope = resolve_project(os.getcwd(), project, all_projects=False)
        scoped = ctx.store.project_stats(scope) if scope else None
        path = ctx.store.db_path

    print("[bold]Database[/bold]")
    print(f"- Path: {path}")
    print(f"- Size: {format_bytes(overall['size_bytes'])}")
    print(f"- Fragments: {overall['fragment_count']}")
    print(f"- Sessions: {overall['session_count']}")
    print(f"- Oldest: {overall['oldest'] or '-'}")
    print(f"- Newest: {overall['newest'] or '-'}")
    if scoped is not None:
        print(f"\n[bold]Project {scoped['project_id']}[/bold]")
        print(f"- Fragments: {scoped['fragment_count']}")
        print(f"- Sessions: {scoped['session_count']}")
        print(f"- Last archive: {scoped['last_archive'] or '-'}")


def analytics_cmd(*, context_from_path, db_path: str | None) -> None:
    with context_from_path(db_path) as ctx:
        summary = ctx.store.analytics_summary()
    week = summary["this_week"]
    print("[bold]Sessions[/bold]")
    print(f"- Total sessions: {summary['total_sessions']}")
    print(f"- Fragments created: {summary['total_fragments']}")
    print(f"- Average context at save: {summary['average_context_at_save']:.0f}%")
    print(f"- Sessions prolonged (save + clear): {summary['sessions_prolonged']}")
    print("\n[bold]This week[/bold]")
    print(f"- Sessions: {week['sessions']}")
    print(f"- Fragments created: {week['fragments_created']}")
    print(f"- Recalls: {week['recalls_used']}")


def check_db_cmd(*, context_from_path, db_path: str | None) -> None:
    with context_from_path(db_path) as ctx:
        report = ctx.store.check()
    print("[bold]Database check[/bold]")
    print(f"- Path: {report['path']}")
    print(f"- Integrity: {report['integrity']}")
    print(f"- sqlite-vec: {report['sqlite_vec_version'] or 'missing'}")
    print(f"- Full-text index: {'enabled' if report['fts_enabled'] else 'fallback scan'}")
    print(f"- Fragments: {report['fragment_count']}")
    stored = report["embedding_dimension"]
    print(f"- Embedding dimension: {stored if stored is not None else '-'} "
          f"(expected {report['expected_dimension']})")
    if report["missing_tables"]:
        print(f"[red]- Missing tables: {', '.join(report['missing_tables'])}[/red]")
    if not report["dimension_ok"]:
        print("[red]- Stored embeddings do not match the configured model dimension[/red]")
    if not report["ok"]:
        raise typer.Exit(code=1)
    print("[green]OK[/green]")


def embed_probe_cmd(*, load_config, text: str) -> None:
    cfg = load_config()
    try:
        client = get_embedding_client(cfg.embedding_model, cfg.embedding_dim)
        vector = embed_query(client, text)
    except EmbeddingError as exc:
        print(f"[red]Embedding failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    preview = ", ".join(f"{value:.4f}" for value in vector[:5])
    print(f"Model: {cfg.embedding_model}")
    print(f"Dimension: {len(vector)}")
    print(f"Preview: [{preview}, ...]")


def configure_cmd(*, preset: str) -> None:
    if preset not in CONFIG_PRESETS:
        print(f"[red]Unknown preset: {preset}. Choose one of: {', '.join(CONFIG_PRESETS)}[/red]")
        raise typer.Exit(code=1)
    read_config_or_exit()
    cfg = apply_preset(preset)
    print(f"Applied preset [bold]{preset}[/bold] to {get_config_path()}")
    print(f"- Auto-save threshold: {cfg.auto_save_threshold}%")
    print(f"- Auto-clear threshold: {cfg.auto_clear_threshold}%"
          f" ({'enabled' if cfg.auto_clear_enabled else 'disabled'})")
    print(f"- Statusline: {'on' if cfg.statusline_enabled else 'off'}")
    print(f"- Restoration: {cfg.restoration_message_count} fragments, "
          f"{cfg.restoration_token_budget} tokens")
