import datetime as dt

import pytest

from cortexmem.automation import archive_content
from cortexmem.retrieval import (
    KEYWORD_WEIGHT,
    RRF_K,
    VECTOR_WEIGHT,
    fuse_rrf,
    hybrid_search,
    rank,
    recency_multiplier,
)
from cortexmem.store import Candidate

NOW = dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.UTC)


def _candidate(fragment_id: int, timestamp: str = "2024-06-15T12:00:00Z") -> Candidate:
    return Candidate(
        id=fragment_id,
        content=f"fragment {fragment_id}",
        score=0.0,
        timestamp=timestamp,
        project_id=None,
    )


def test_fusion_rewards_presence_in_both_lists() -> None:
    a, b, c, d, e = (_candidate(i) for i in range(1, 6))
    fused = {entry.candidate.id: entry for entry in fuse_rrf([a, b, c], [a, d, e])}

    assert len(fused) == 5
    assert fused[1].fused_score == pytest.approx(
        VECTOR_WEIGHT / (RRF_K + 1) + KEYWORD_WEIGHT / (RRF_K + 1)
    )
    assert fused[1].fused_score > fused[2].fused_score
    assert fused[1].fused_score > fused[4].fused_score
    assert fused[1].provenance == "hybrid"
    assert fused[2].provenance == "vector"
    assert fused[4].provenance == "keyword"


def test_fusion_of_empty_lists() -> None:
    assert fuse_rrf([], []) == []
    only_keyword = fuse_rrf([], [_candidate(7)])
    assert [(f.candidate.id, f.provenance) for f in only_keyword] == [(7, "keyword")]


def test_recency_multiplier_two_half_lives() -> None:
    fresh = recency_multiplier("2024-06-15T12:00:00Z", NOW)
    old = recency_multiplier("2024-06-01T12:00:00Z", NOW)
    assert fresh == pytest.approx(1.0)
    assert old == pytest.approx(0.775)
    assert old / fresh == pytest.approx(0.775)


def test_recency_multiplier_edge_timestamps() -> None:
    # Future timestamps are treated as age zero.
    assert recency_multiplier("2024-07-01T00:00:00Z", NOW) == pytest.approx(1.0)
    assert recency_multiplier("not a date", NOW) == 1.0
    assert recency_multiplier("2020-01-01T00:00:00Z", NOW) == pytest.approx(0.7, abs=1e-6)


def test_rank_applies_decay_to_equal_fused_scores() -> None:
    fresh = _candidate(1, "2024-06-15T12:00:00Z")
    old = _candidate(2, "2024-06-01T12:00:00Z")
    fused = fuse_rrf([old], [fresh], vector_weight=0.5, keyword_weight=0.5)

    results = rank(fused, limit=10, now=NOW)

    assert [r.id for r in results] == [1, 2]
    assert results[1].score / results[0].score == pytest.approx(0.775)
    assert results[0].fused_score == results[1].fused_score


def test_rank_ties_keep_insertion_order_and_limit() -> None:
    fused = fuse_rrf([_candidate(3)], [_candidate(9)], vector_weight=0.5, keyword_weight=0.5)
    assert [r.id for r in rank(fused, limit=10, now=NOW)] == [3, 9]
    assert [r.id for r in rank(fused, limit=1, now=NOW)] == [3]
    assert rank(fused, limit=0, now=NOW) == []


def test_hybrid_search_finds_keyword_and_vector_matches(memory_context, fake_embedder) -> None:
    archive_content(
        memory_context,
        "We decided to debounce the file watcher because editors write twice on save.",
        project_id="alpha",
    )
    archive_content(
        memory_context,
        "Switched the CI cache key to include the lockfile hash.",
        project_id="alpha",
    )

    results = hybrid_search(
        memory_context.store, memory_context.embedder, "debounce watcher", limit=5
    )

    assert results
    assert results[0].content.startswith("We decided to debounce")
    assert results[0].provenance == "hybrid"
    assert fake_embedder.calls[-1] == ("query", ["debounce watcher"])
    assert len({r.id for r in results}) == len(results)


def test_hybrid_search_respects_scope(memory_context) -> None:
    archive_content(memory_context, "Alpha uses sqlite-vec for cosine ranking.", project_id="alpha")
    archive_content(
        memory_context, "Beta uses sqlite-vec for cosine ranking too.", project_id="beta"
    )

    scoped = hybrid_search(memory_context.store, memory_context.embedder, "cosine", scope="beta")
    everywhere = hybrid_search(memory_context.store, memory_context.embedder, "cosine")

    assert {r.project_id for r in scoped} == {"beta"}
    assert {r.project_id for r in everywhere} == {"alpha", "beta"}


def test_hybrid_search_empty_inputs(memory_context, fake_embedder) -> None:
    assert hybrid_search(memory_context.store, memory_context.embedder, "   ") == []
    assert hybrid_search(memory_context.store, memory_context.embedder, "anything", limit=0) == []
    assert hybrid_search(memory_context.store, memory_context.embedder, "nothing stored") == []
    assert fake_embedder.calls == [("query", ["nothing stored"])]
