from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .. import db
from ..semantic import FINGERPRINT_LENGTH
from . import fragments as store_fragments
from . import search as store_search
from . import sessions as store_sessions
from .sessions import AutoSaveState
from .types import Candidate, Fragment, FragmentDraft, FragmentStats, ProjectStats


class FragmentStore:
    FINGERPRINT_LENGTH = FINGERPRINT_LENGTH
    # Synthetic score for the substring fallback: 1 - step * rank.
    FALLBACK_SCORE_STEP = 0.1
    MAX_SESSIONS = store_sessions.MAX_SESSIONS

    def __init__(
        self,
        db_path: Path | str,
        *,
        embedding_dim: int = 384,
        enable_fts: bool = True,
    ):
        self.db_path = Path(db_path).expanduser()
        self.embedding_dim = embedding_dim
        self.conn = db.connect(self.db_path)
        self.fts_enabled = db.initialize_schema(self.conn, enable_fts=enable_fts)

    def flush(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    def close(self) -> None:
        self.conn.close()

    # Fragments

    def insert_or_detect_duplicate(self, draft: FragmentDraft) -> tuple[int, bool]:
        return store_fragments.insert_or_detect_duplicate(self, draft)

    def exists(self, content: str) -> bool:
        return store_fragments.exists(self, content)

    def get(self, fragment_id: int) -> Fragment | None:
        return store_fragments.get(self, fragment_id)

    def update(self, fragment_id: int, content: str, embedding: Sequence[float]) -> bool:
        return store_fragments.update(self, fragment_id, content, embedding)

    def delete(self, fragment_id: int) -> bool:
        return store_fragments.delete(self, fragment_id)

    def delete_by_project(self, project_id: str | None) -> int:
        return store_fragments.delete_by_project(self, project_id)

    def list_recent(self, scope: str | None = None, limit: int = 10) -> list[Fragment]:
        return store_fragments.list_recent(self, scope, limit)

    def stats(self, scope: str | None = None) -> FragmentStats:
        return store_fragments.stats(self, scope)

    def project_stats(self, project_id: str | None) -> ProjectStats:
        return store_fragments.project_stats(self, project_id)

    def embedding_dimension(self) -> int | None:
        return store_fragments.embedding_dimension(self)

    def check(self) -> dict[str, Any]:
        return store_fragments.check(self)

    # Candidate lists

    def vector_candidates(
        self, query_embedding: Sequence[float], scope: str | None, limit: int
    ) -> list[Candidate]:
        return store_search.vector_candidates(self, query_embedding, scope, limit)

    def keyword_candidates(self, query: str, scope: str | None, limit: int) -> list[Candidate]:
        return store_search.keyword_candidates(self, query, scope, limit)

    # Sessions and automation state

    def start_session(self, project_id: str | None) -> dict[str, Any]:
        return store_sessions.start_session(self, project_id)

    def end_session(self) -> dict[str, Any] | None:
        return store_sessions.end_session(self)

    def active_session(self) -> dict[str, Any] | None:
        return store_sessions.active_session(self)

    def current_session(self, project_id: str | None) -> dict[str, Any]:
        return store_sessions.current_session(self, project_id)

    def update_context_percent(self, percent: int) -> None:
        store_sessions.update_context_percent(self, percent)

    def record_save_point(self, context_percent: int, fragments_saved: int) -> None:
        store_sessions.record_save_point(self, context_percent, fragments_saved)

    def record_clear(self) -> None:
        store_sessions.record_clear(self)

    def record_recall(self) -> None:
        store_sessions.record_recall(self)

    def record_restoration_used(self) -> None:
        store_sessions.record_restoration_used(self)

    def analytics_summary(self) -> dict[str, Any]:
        return store_sessions.analytics_summary(self)

    def recent_project_sessions(
        self, project_id: str | None, limit: int = 5
    ) -> list[dict[str, Any]]:
        return store_sessions.recent_project_sessions(self, project_id, limit)

    def load_auto_save_state(self) -> AutoSaveState:
        return store_sessions.load_auto_save_state(self)

    def save_auto_save_state(self, state: AutoSaveState) -> None:
        store_sessions.save_auto_save_state(self, state)

    def upsert_session_summary(self, **kwargs: Any) -> None:
        store_sessions.upsert_session_summary(self, **kwargs)

    def latest_session_summary(self, project_id: str | None) -> dict[str, Any] | None:
        return store_sessions.latest_session_summary(self, project_id)
