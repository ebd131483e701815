from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from ..semantic import serialize
from .fragments import scope_clause
from .types import Candidate

if TYPE_CHECKING:
    from ._store import FragmentStore

logger = logging.getLogger(__name__)


def query_terms(query: str) -> list[str]:
    cleaned = re.sub(r"[\"']", " ", query)
    return [term for term in cleaned.split() if term]


def vector_candidates(
    store: FragmentStore,
    query_embedding: Sequence[float],
    scope: str | None,
    limit: int,
) -> list[Candidate]:
    """Fragments ordered by descending cosine similarity to the query vector."""
    if limit <= 0:
        return []
    if len(query_embedding) != store.embedding_dim:
        raise ValueError(
            f"query embedding dimension {len(query_embedding)} does not match "
            f"store dimension {store.embedding_dim}"
        )
    clause, params = scope_clause(scope)
    where = f"WHERE {clause}" if clause else ""
    rows = store.conn.execute(
        f"""
        SELECT id, content, timestamp, project_id,
            vec_distance_cosine(embedding, ?) AS distance
        FROM fragments
        {where}
        ORDER BY distance ASC, id ASC
        LIMIT ?
        """,
        [serialize(query_embedding), *params, limit],
    ).fetchall()
    return [
        Candidate(
            id=int(row["id"]),
            content=str(row["content"]),
            score=1.0 - float(row["distance"]),
            timestamp=str(row["timestamp"]),
            project_id=row["project_id"],
        )
        for row in rows
    ]


def keyword_candidates(
    store: FragmentStore, query: str, scope: str | None, limit: int
) -> list[Candidate]:
    terms = query_terms(query)
    if not terms or limit <= 0:
        return []
    if store.fts_enabled:
        try:
            return _fts_candidates(store, terms, scope, limit)
        except sqlite3.OperationalError as exc:
            logger.debug("fts query failed, using substring scan: %s", exc)
    return _scan_candidates(store, terms, scope, limit)


def _fts_candidates(
    store: FragmentStore, terms: list[str], scope: str | None, limit: int
) -> list[Candidate]:
    match = " ".join(f'"{term}"' for term in terms)
    params: list[Any] = [match]
    where_clauses = ["fragments_fts MATCH ?"]
    clause, clause_params = scope_clause(scope, "fragments.project_id")
    if clause:
        where_clauses.append(clause)
        params.extend(clause_params)
    params.append(limit)
    rows = store.conn.execute(
        f"""
        SELECT fragments.id, fragments.content, fragments.timestamp, fragments.project_id,
            -bm25(fragments_fts) AS score
        FROM fragments_fts
        JOIN fragments ON fragments.id = fragments_fts.rowid
        WHERE {" AND ".join(where_clauses)}
        ORDER BY bm25(fragments_fts) ASC, fragments.id ASC
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [
        Candidate(
            id=int(row["id"]),
            content=str(row["content"]),
            score=float(row["score"]),
            timestamp=str(row["timestamp"]),
            project_id=row["project_id"],
        )
        for row in rows
    ]


def _scan_candidates(
    store: FragmentStore, terms: list[str], scope: str | None, limit: int
) -> list[Candidate]:
    """Every term must appear, Unicode case-insensitive; newest first, rank-derived score.

    SQLite's lower() and LIKE fold ASCII only, so matching happens on casefolded text here.
    """
    needles = [term.casefold() for term in terms]
    clause, params = scope_clause(scope)
    where = f"WHERE {clause}" if clause else ""
    cursor = store.conn.execute(
        f"""
        SELECT id, content, timestamp, project_id
        FROM fragments
        {where}
        ORDER BY timestamp DESC, id DESC
        """,
        params,
    )
    rows: list[sqlite3.Row] = []
    for row in cursor:
        folded = str(row["content"]).casefold()
        if all(needle in folded for needle in needles):
            rows.append(row)
            if len(rows) >= limit:
                break
    step = store.FALLBACK_SCORE_STEP
    return [
        Candidate(
            id=int(row["id"]),
            content=str(row["content"]),
            score=1.0 - step * index,
            timestamp=str(row["timestamp"]),
            project_id=row["project_id"],
        )
        for index, row in enumerate(rows)
    ]
