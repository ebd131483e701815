from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from .. import db
from ..semantic import hash_text, serialize
from .types import Fragment, FragmentDraft, FragmentStats, ProjectStats
from .utils import normalize_timestamp, now_iso

if TYPE_CHECKING:
    from ._store import FragmentStore

logger = logging.getLogger(__name__)


def scope_clause(scope: str | None, column: str = "project_id") -> tuple[str, list[Any]]:
    if scope is None:
        return "", []
    return f"{column} = ?", [scope]


def _row_to_fragment(row: sqlite3.Row) -> Fragment:
    return Fragment(
        id=int(row["id"]),
        content=str(row["content"]),
        content_hash=str(row["content_hash"]),
        project_id=row["project_id"],
        source_session=str(row["source_session"]),
        timestamp=str(row["timestamp"]),
        created_at=str(row["created_at"]),
    )


def _check_embedding(store: FragmentStore, embedding: Sequence[float]) -> None:
    if len(embedding) != store.embedding_dim:
        raise ValueError(
            f"embedding dimension {len(embedding)} does not match store dimension "
            f"{store.embedding_dim}"
        )


def find_by_hash(store: FragmentStore, content_hash: str) -> int | None:
    row = store.conn.execute(
        "SELECT id FROM fragments WHERE content_hash = ?", (content_hash,)
    ).fetchone()
    return int(row["id"]) if row else None


def insert_or_detect_duplicate(store: FragmentStore, draft: FragmentDraft) -> tuple[int, bool]:
    content = draft.content.strip()
    if not content:
        raise ValueError("fragment content must not be empty")
    content_hash = hash_text(content)
    existing = find_by_hash(store, content_hash)
    if existing is not None:
        return existing, True
    _check_embedding(store, draft.embedding)
    cur = store.conn.execute(
        """
        INSERT INTO fragments(
            content, content_hash, embedding, project_id, source_session, timestamp, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            content,
            content_hash,
            serialize(draft.embedding),
            draft.project_id,
            draft.source_session,
            normalize_timestamp(draft.timestamp),
            now_iso(),
        ),
    )
    fragment_id = cur.lastrowid
    if fragment_id is None:
        raise RuntimeError("fragment insert failed")
    return int(fragment_id), False


def exists(store: FragmentStore, content: str) -> bool:
    return find_by_hash(store, hash_text(content)) is not None


def get(store: FragmentStore, fragment_id: int) -> Fragment | None:
    row = store.conn.execute(
        """
        SELECT id, content, content_hash, project_id, source_session, timestamp, created_at
        FROM fragments WHERE id = ?
        """,
        (fragment_id,),
    ).fetchone()
    return _row_to_fragment(row) if row else None


def update(
    store: FragmentStore, fragment_id: int, content: str, embedding: Sequence[float]
) -> bool:
    """Replace content, fingerprint and embedding of one fragment in a single statement."""
    content = content.strip()
    if not content:
        raise ValueError("fragment content must not be empty")
    _check_embedding(store, embedding)
    cur = store.conn.execute(
        "UPDATE fragments SET content = ?, content_hash = ?, embedding = ? WHERE id = ?",
        (content, hash_text(content), serialize(embedding), fragment_id),
    )
    return cur.rowcount > 0


def delete(store: FragmentStore, fragment_id: int) -> bool:
    cur = store.conn.execute("DELETE FROM fragments WHERE id = ?", (fragment_id,))
    return cur.rowcount > 0


def delete_by_project(store: FragmentStore, project_id: str | None) -> int:
    cur = store.conn.execute("DELETE FROM fragments WHERE project_id IS ?", (project_id,))
    deleted = cur.rowcount
    logger.debug("deleted %d fragments for project %s", deleted, project_id or "global")
    return deleted


def list_recent(store: FragmentStore, scope: str | None, limit: int) -> list[Fragment]:
    if limit <= 0:
        return []
    clause, params = scope_clause(scope)
    where = f"WHERE {clause}" if clause else ""
    rows = store.conn.execute(
        f"""
        SELECT id, content, content_hash, project_id, source_session, timestamp, created_at
        FROM fragments
        {where}
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        """,
        [*params, limit],
    ).fetchall()
    return [_row_to_fragment(row) for row in rows]


def stats(store: FragmentStore, scope: str | None = None) -> FragmentStats:
    clause, params = scope_clause(scope)
    where = f"WHERE {clause}" if clause else ""
    row = store.conn.execute(
        f"""
        SELECT
            COUNT(*) AS fragment_count,
            COUNT(DISTINCT source_session) AS session_count,
            MIN(timestamp) AS oldest,
            MAX(timestamp) AS newest,
            COALESCE(SUM(length(CAST(content AS BLOB)) + length(embedding)), 0) AS payload_bytes
        FROM fragments
        {where}
        """,
        params,
    ).fetchone()
    if scope is None:
        size_bytes = db.database_size(store.conn)
    else:
        size_bytes = int(row["payload_bytes"])
    return FragmentStats(
        fragment_count=int(row["fragment_count"]),
        session_count=int(row["session_count"]),
        oldest=row["oldest"],
        newest=row["newest"],
        size_bytes=size_bytes,
    )


def project_stats(store: FragmentStore, project_id: str | None) -> ProjectStats:
    row = store.conn.execute(
        """
        SELECT
            COUNT(*) AS fragment_count,
            COUNT(DISTINCT source_session) AS session_count,
            MAX(created_at) AS last_archive
        FROM fragments
        WHERE project_id IS ?
        """,
        (project_id,),
    ).fetchone()
    return ProjectStats(
        project_id=project_id,
        fragment_count=int(row["fragment_count"]),
        session_count=int(row["session_count"]),
        last_archive=row["last_archive"],
    )


def embedding_dimension(store: FragmentStore) -> int | None:
    row = store.conn.execute("SELECT length(embedding) AS size FROM fragments LIMIT 1").fetchone()
    if row is None or row["size"] is None:
        return None
    # float32 blobs
    return int(row["size"]) // 4


def check(store: FragmentStore) -> dict[str, Any]:
    tables = set(db.list_tables(store.conn))
    missing = [name for name in db.REQUIRED_TABLES if name not in tables]
    integrity = store.conn.execute("PRAGMA integrity_check").fetchone()[0]
    stored_dim = embedding_dimension(store)
    return {
        "path": str(store.db_path),
        "missing_tables": missing,
        "integrity": str(integrity),
        "fts_enabled": store.fts_enabled,
        "sqlite_vec_version": db.sqlite_vec_version(store.conn),
        "embedding_dimension": stored_dim,
        "expected_dimension": store.embedding_dim,
        "dimension_ok": stored_dim is None or stored_dim == store.embedding_dim,
        "fragment_count": stats(store)["fragment_count"],
        "ok": not missing
        and str(integrity) == "ok"
        and (stored_dim is None or stored_dim == store.embedding_dim),
    }
