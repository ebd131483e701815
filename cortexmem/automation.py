from __future__ import annotations

import datetime as dt
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .context import MemoryContext
from .ingest.chunking import extract_chunks
from .ingest.insights import extract_session_insights
from .ingest.transcript import parse_transcript, session_id_for
from .retrieval import hybrid_search
from .semantic import embed_passages
from .store import AutoSaveState, FragmentDraft
from .store.utils import now_iso

logger = logging.getLogger(__name__)

TOKENS_PER_CHAR = 0.25
MIN_TRUNCATION_TOKENS = 50
RESTORATION_QUERY = "recent work summary context decisions"
NO_CONTEXT_SUMMARY = "No recent context available."


@dataclass
class ArchiveResult:
    archived: int = 0
    skipped: int = 0
    duplicates: int = 0
    discarded: dict[str, int] = field(default_factory=dict)
    source_session: str | None = None
    fragment_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class RestorationFragment:
    id: int
    content: str
    timestamp: str
    truncated: bool = False


@dataclass
class RestorationContext:
    has_content: bool
    summary: str
    fragments: list[RestorationFragment] = field(default_factory=list)
    estimated_tokens: int = 0


@dataclass
class AutomationOutcome:
    action: Literal["none", "auto_save", "auto_clear"]
    context_percent: int
    archive: ArchiveResult | None = None
    restoration: RestorationContext | None = None


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) * TOKENS_PER_CHAR)


def should_auto_save(
    state: AutoSaveState,
    context_percent: int,
    transcript_path: str | None,
    threshold: int,
) -> bool:
    if context_percent < threshold:
        return False
    # A different transcript is a new session; the guard does not carry over.
    if transcript_path and state.transcript_path != transcript_path:
        return True
    return not state.has_saved_this_session


def archive_transcript(
    ctx: MemoryContext,
    transcript_path: Path | str,
    *,
    project_id: str | None,
    on_progress: Callable[[int, int], None] | None = None,
) -> ArchiveResult:
    """Chunk, filter, embed and store the assistant turns of one transcript.

    Embedding failures propagate; the caller's context rolls back anything
    inserted during this call.
    """
    store = ctx.store
    source_session = session_id_for(transcript_path)
    result = ArchiveResult(source_session=source_session)
    parsed = parse_transcript(transcript_path)
    if not parsed.turns:
        return result

    chunking = extract_chunks(parsed.turns, min_length=ctx.config.min_content_length)
    result.skipped = chunking.skipped
    result.discarded = dict(chunking.discarded)

    pending = []
    for chunk in chunking.chunks:
        if store.exists(chunk.text):
            result.duplicates += 1
            continue
        pending.append(chunk)

    if pending:
        embeddings = embed_passages(
            ctx.embedder,
            [chunk.text for chunk in pending],
            batch_size=ctx.config.embedding_batch_size,
            on_progress=on_progress,
        )
        for chunk, embedding in zip(pending, embeddings, strict=True):
            fragment_id, is_duplicate = store.insert_or_detect_duplicate(
                FragmentDraft(
                    content=chunk.text,
                    embedding=embedding,
                    source_session=source_session,
                    project_id=project_id,
                    timestamp=chunk.timestamp,
                )
            )
            if is_duplicate:
                result.duplicates += 1
            else:
                result.archived += 1
                result.fragment_ids.append(fragment_id)

    insights = extract_session_insights(parsed.turns)
    store.upsert_session_summary(
        project_id=project_id,
        source_session=source_session,
        summary=insights.summary,
        key_decisions=insights.decisions,
        key_outcomes=insights.outcomes,
        blockers=insights.blockers,
        fragments_saved=result.archived,
    )
    logger.info(
        "archived %s: %d new, %d skipped, %d duplicates",
        source_session,
        result.archived,
        result.skipped,
        result.duplicates,
    )
    return result


def archive_content(
    ctx: MemoryContext,
    text: str,
    *,
    project_id: str | None,
    context: str | None = None,
) -> ArchiveResult:
    """Store one manually supplied fragment, bypassing the chunk filters."""
    content = text.strip()
    if context:
        content = f"{content}\n\n[Context: {context.strip()}]"
    source_session = f"manual-{int(time.time() * 1000)}"
    result = ArchiveResult(source_session=source_session)
    if not text.strip():
        result.skipped = 1
        return result
    if ctx.store.exists(content):
        result.duplicates = 1
        return result
    embedding = embed_passages(ctx.embedder, [content])[0]
    fragment_id, is_duplicate = ctx.store.insert_or_detect_duplicate(
        FragmentDraft(
            content=content,
            embedding=embedding,
            source_session=source_session,
            project_id=project_id,
        )
    )
    if is_duplicate:
        result.duplicates = 1
    else:
        result.archived = 1
        result.fragment_ids.append(fragment_id)
    return result


def build_restoration_context(
    ctx: MemoryContext,
    scope: str | None,
    *,
    message_count: int | None = None,
    token_budget: int | None = None,
    now: dt.datetime | None = None,
) -> RestorationContext:
    if message_count is None:
        message_count = ctx.config.restoration_message_count
    if token_budget is None:
        token_budget = ctx.config.restoration_token_budget

    candidates = hybrid_search(
        ctx.store,
        ctx.embedder,
        RESTORATION_QUERY,
        scope=scope,
        limit=message_count * 2,
        now=now,
    )
    fragments: list[RestorationFragment] = []
    used = 0
    for candidate in candidates:
        if len(fragments) >= message_count:
            break
        cost = estimate_tokens(candidate.content)
        if used + cost > token_budget:
            remaining = token_budget - used
            if remaining > MIN_TRUNCATION_TOKENS:
                clipped = candidate.content[: int(remaining / TOKENS_PER_CHAR)]
                fragments.append(
                    RestorationFragment(
                        id=candidate.id,
                        content=clipped,
                        timestamp=candidate.timestamp,
                        truncated=True,
                    )
                )
                used += estimate_tokens(clipped)
            break
        fragments.append(
            RestorationFragment(
                id=candidate.id, content=candidate.content, timestamp=candidate.timestamp
            )
        )
        used += cost

    if not fragments:
        return RestorationContext(has_content=False, summary=NO_CONTEXT_SUMMARY)
    return RestorationContext(
        has_content=True,
        summary=f"Restored {len(fragments)} memories from {scope or 'global'}.",
        fragments=fragments,
        estimated_tokens=used,
    )


def _mark_saved(ctx: MemoryContext, context_percent: int, transcript_path: str | None) -> None:
    state = ctx.store.load_auto_save_state()
    state.last_auto_save_at = now_iso()
    state.last_auto_save_context = context_percent
    state.transcript_path = transcript_path
    state.has_saved_this_session = True
    ctx.store.save_auto_save_state(state)


def _archive_if_possible(
    ctx: MemoryContext, transcript_path: str | None, project_id: str | None
) -> ArchiveResult:
    if not transcript_path:
        return ArchiveResult()
    return archive_transcript(ctx, transcript_path, project_id=project_id)


def evaluate_context(
    ctx: MemoryContext,
    *,
    context_percent: int,
    transcript_path: str | None,
    project_id: str | None,
    now: dt.datetime | None = None,
) -> AutomationOutcome:
    """Run the auto-save / auto-clear decision for one polled context reading."""
    cfg = ctx.config
    store = ctx.store
    store.current_session(project_id)
    store.update_context_percent(context_percent)

    if cfg.auto_clear_enabled and context_percent >= cfg.auto_clear_threshold:
        result = _archive_if_possible(ctx, transcript_path, project_id)
        if result.archived > 0:
            store.record_save_point(context_percent, result.archived)
        _mark_saved(ctx, context_percent, transcript_path)
        store.record_clear()
        restoration = build_restoration_context(ctx, project_id, now=now)
        return AutomationOutcome(
            action="auto_clear",
            context_percent=context_percent,
            archive=result,
            restoration=restoration,
        )

    state = store.load_auto_save_state()
    if not should_auto_save(state, context_percent, transcript_path, cfg.auto_save_threshold):
        return AutomationOutcome(action="none", context_percent=context_percent)

    result = _archive_if_possible(ctx, transcript_path, project_id)
    _mark_saved(ctx, context_percent, transcript_path)
    restoration = None
    if result.archived > 0:
        store.record_save_point(context_percent, result.archived)
        restoration = build_restoration_context(ctx, project_id, now=now)
    return AutomationOutcome(
        action="auto_save",
        context_percent=context_percent,
        archive=result,
        restoration=restoration,
    )


def reset_session_guard(ctx: MemoryContext) -> AutoSaveState:
    """Clear only the saved-this-session flag; history fields stay for display."""
    state = ctx.store.load_auto_save_state()
    state.has_saved_this_session = False
    ctx.store.save_auto_save_state(state)
    return state


def note_warning_threshold(ctx: MemoryContext, context_percent: int) -> bool:
    """Record the first crossing of the warning threshold; True when newly crossed."""
    if context_percent < ctx.config.context_warning_threshold:
        return False
    state = ctx.store.load_auto_save_state()
    if state.has_reached_warning_threshold:
        return False
    state.has_reached_warning_threshold = True
    state.warning_context_percent = context_percent
    ctx.store.save_auto_save_state(state)
    return True
