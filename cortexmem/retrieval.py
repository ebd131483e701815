"""Hybrid ranking: reciprocal rank fusion of vector and keyword candidates, then recency decay."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .semantic import EmbeddingClient, embed_query
from .store import Candidate, FragmentStore, SearchResult
from .store.types import Provenance
from .store.utils import parse_iso8601

logger = logging.getLogger(__name__)

RRF_K = 60
VECTOR_WEIGHT = 0.6
KEYWORD_WEIGHT = 0.4
HALF_LIFE_DAYS = 7.0
# Lower bound of the recency multiplier; the rest (1 - floor) scales with decay.
RECENCY_FLOOR = 0.7
CANDIDATE_MULTIPLIER = 2


@dataclass
class FusedCandidate:
    candidate: Candidate
    fused_score: float
    provenance: Provenance
    order: int


def fuse_rrf(
    vector: Sequence[Candidate],
    keyword: Sequence[Candidate],
    *,
    k: int = RRF_K,
    vector_weight: float = VECTOR_WEIGHT,
    keyword_weight: float = KEYWORD_WEIGHT,
) -> list[FusedCandidate]:
    """Merge two ranked lists by id, summing `weight / (k + rank + 1)` per list."""
    fused: dict[int, FusedCandidate] = {}
    for provenance, items, weight in (
        ("vector", vector, vector_weight),
        ("keyword", keyword, keyword_weight),
    ):
        for rank, item in enumerate(items):
            contribution = weight / (k + rank + 1)
            entry = fused.get(item.id)
            if entry is None:
                fused[item.id] = FusedCandidate(
                    candidate=item,
                    fused_score=contribution,
                    provenance=provenance,  # type: ignore[arg-type]
                    order=len(fused),
                )
                continue
            entry.fused_score += contribution
            if entry.provenance != provenance:
                entry.provenance = "hybrid"
    return list(fused.values())


def recency_multiplier(
    timestamp: str,
    now: dt.datetime,
    *,
    half_life_days: float = HALF_LIFE_DAYS,
    floor: float = RECENCY_FLOOR,
) -> float:
    parsed = parse_iso8601(timestamp)
    if parsed is None:
        return 1.0
    age_days = max((now - parsed).total_seconds() / 86400.0, 0.0)
    decay = 0.5 ** (age_days / half_life_days)
    return floor + (1.0 - floor) * decay


def rank(fused: Sequence[FusedCandidate], *, limit: int, now: dt.datetime) -> list[SearchResult]:
    scored = [
        (entry, entry.fused_score * recency_multiplier(entry.candidate.timestamp, now))
        for entry in fused
    ]
    scored.sort(key=lambda pair: (-pair[1], -pair[0].fused_score, pair[0].order))
    return [
        SearchResult(
            id=entry.candidate.id,
            content=entry.candidate.content,
            score=final,
            fused_score=entry.fused_score,
            provenance=entry.provenance,
            timestamp=entry.candidate.timestamp,
            project_id=entry.candidate.project_id,
        )
        for entry, final in scored[: max(limit, 0)]
    ]


def hybrid_search(
    store: FragmentStore,
    embedder: EmbeddingClient,
    query: str,
    *,
    scope: str | None = None,
    limit: int = 10,
    now: dt.datetime | None = None,
) -> list[SearchResult]:
    if not query.strip() or limit <= 0:
        return []
    query_embedding = embed_query(embedder, query)
    candidate_limit = limit * CANDIDATE_MULTIPLIER
    vector = store.vector_candidates(query_embedding, scope, candidate_limit)
    keyword = store.keyword_candidates(query, scope, candidate_limit)
    logger.debug(
        "hybrid search %r scope=%s: %d vector, %d keyword candidates",
        query,
        scope or "all",
        len(vector),
        len(keyword),
    )
    fused = fuse_rrf(vector, keyword)
    return rank(fused, limit=limit, now=now or dt.datetime.now(dt.UTC))
