import sqlite3
from pathlib import Path

import pytest

from cortexmem import db
from cortexmem.semantic import hash_text
from cortexmem.store import FragmentDraft, FragmentStore
from cortexmem.store import search as store_search


def _vector(index: int, dim: int = 8) -> list[float]:
    values = [0.1] * dim
    values[index] = 1.0
    return values


def _store(tmp_path: Path, **kwargs) -> FragmentStore:
    return FragmentStore(tmp_path / "mem.sqlite", embedding_dim=8, **kwargs)


def _draft(content: str, index: int = 0, **kwargs) -> FragmentDraft:
    kwargs.setdefault("source_session", "session-1")
    return FragmentDraft(content=content, embedding=_vector(index), **kwargs)


def test_schema_has_required_tables(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        tables = set(db.list_tables(store.conn))
        assert set(db.REQUIRED_TABLES) <= tables
        assert store.fts_enabled is True
    finally:
        store.close()


def test_insert_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        first_id, first_dup = store.insert_or_detect_duplicate(_draft("Chose WAL mode for sqlite"))
        second_id, second_dup = store.insert_or_detect_duplicate(
            _draft("Chose WAL mode for sqlite", index=3, source_session="other")
        )
        assert (first_dup, second_dup) == (False, True)
        assert second_id == first_id
        assert store.stats()["fragment_count"] == 1
    finally:
        store.close()


def test_fingerprint_is_trimmed_and_sensitive() -> None:
    content = "The cache key includes the project id."
    assert hash_text(content) == hash_text(f"  \n{content}\t ")
    assert hash_text(content) == hash_text(str(content))
    assert hash_text(content) != hash_text(content.replace("cache", "cachE"))
    assert len(hash_text(content)) == FragmentStore.FINGERPRINT_LENGTH


def test_padded_duplicate_is_detected(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        fragment_id, _ = store.insert_or_detect_duplicate(_draft("Use bm25 for keyword ranking"))
        assert store.exists("   Use bm25 for keyword ranking\n")
        again, is_dup = store.insert_or_detect_duplicate(_draft("\nUse bm25 for keyword ranking "))
        assert (again, is_dup) == (fragment_id, True)
    finally:
        store.close()


def test_insert_rejects_empty_content_and_wrong_dimension(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        with pytest.raises(ValueError):
            store.insert_or_detect_duplicate(_draft("   "))
        with pytest.raises(ValueError, match="dimension"):
            store.insert_or_detect_duplicate(
                FragmentDraft(content="short vector", embedding=[1.0, 0.0], source_session="s")
            )
    finally:
        store.close()


def test_get_and_delete(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        fragment_id, _ = store.insert_or_detect_duplicate(
            _draft(
                "Renamed the config loader", project_id="alpha", timestamp="2024-03-01T10:00:00Z"
            )
        )
        fragment = store.get(fragment_id)
        assert fragment is not None
        assert fragment.content == "Renamed the config loader"
        assert fragment.project_id == "alpha"
        assert fragment.timestamp.startswith("2024-03-01T10:00:00")
        assert store.delete(fragment_id) is True
        assert store.delete(fragment_id) is False
        assert store.get(fragment_id) is None
    finally:
        store.close()


def test_delete_by_project_only_touches_that_scope(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        store.insert_or_detect_duplicate(_draft("alpha one", project_id="alpha"))
        store.insert_or_detect_duplicate(_draft("alpha two", project_id="alpha"))
        store.insert_or_detect_duplicate(_draft("beta one", project_id="beta"))
        store.insert_or_detect_duplicate(_draft("global one"))

        assert store.delete_by_project("alpha") == 2
        assert store.delete_by_project(None) == 1
        remaining = store.list_recent(None, 10)
        assert [f.content for f in remaining] == ["beta one"]
    finally:
        store.close()


def test_list_recent_orders_by_timestamp_desc(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        store.insert_or_detect_duplicate(_draft("older", timestamp="2024-01-01T00:00:00Z"))
        store.insert_or_detect_duplicate(_draft("newest", timestamp="2024-03-01T00:00:00Z"))
        store.insert_or_detect_duplicate(
            _draft("middle", project_id="p", timestamp="2024-02-01T00:00:00Z")
        )
        assert [f.content for f in store.list_recent(None, 10)] == ["newest", "middle", "older"]
        assert [f.content for f in store.list_recent(None, 2)] == ["newest", "middle"]
        assert [f.content for f in store.list_recent("p", 10)] == ["middle"]
        assert store.list_recent(None, 0) == []
    finally:
        store.close()


def test_stats_global_and_scoped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        empty = store.stats()
        assert empty["fragment_count"] == 0
        assert empty["oldest"] is None

        store.insert_or_detect_duplicate(
            _draft("first", project_id="p", source_session="a", timestamp="2024-01-01T00:00:00Z")
        )
        store.insert_or_detect_duplicate(
            _draft("second", project_id="p", source_session="b", timestamp="2024-02-01T00:00:00Z")
        )
        store.insert_or_detect_duplicate(_draft("third", source_session="b"))

        overall = store.stats()
        assert overall["fragment_count"] == 3
        assert overall["session_count"] == 2
        assert overall["size_bytes"] > 0

        scoped = store.stats("p")
        assert scoped["fragment_count"] == 2
        assert scoped["oldest"].startswith("2024-01-01")
        assert scoped["newest"].startswith("2024-02-01")
        # content bytes plus two float32 vectors of 8 dims
        assert scoped["size_bytes"] == len("first") + len("second") + 2 * 8 * 4

        project = store.project_stats("p")
        assert project["fragment_count"] == 2
        assert project["session_count"] == 2
        assert project["last_archive"] is not None
    finally:
        store.close()


def test_update_replaces_content_and_fingerprint(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        fragment_id, _ = store.insert_or_detect_duplicate(_draft("draft text"))
        other_id, _ = store.insert_or_detect_duplicate(_draft("other text"))

        assert store.update(fragment_id, "final text", _vector(2)) is True
        assert store.exists("final text")
        assert not store.exists("draft text")
        assert store.update(9999, "missing", _vector(1)) is False
        with pytest.raises(sqlite3.IntegrityError):
            store.update(other_id, "final text", _vector(1))
    finally:
        store.close()


def test_vector_candidates_rank_by_cosine_within_scope(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        a, _ = store.insert_or_detect_duplicate(_draft("axis zero", 0, project_id="p"))
        b, _ = store.insert_or_detect_duplicate(_draft("axis one", 1, project_id="p"))
        c, _ = store.insert_or_detect_duplicate(_draft("axis zero elsewhere", 0, project_id="q"))

        results = store.vector_candidates(_vector(0), None, 10)
        assert results[0].id in {a, c}
        assert results[-1].id == b
        assert results[0].score == pytest.approx(1.0, abs=1e-5)
        assert all(x.score >= y.score for x, y in zip(results, results[1:]))

        scoped = store.vector_candidates(_vector(0), "p", 10)
        assert [r.id for r in scoped] == [a, b]
        assert store.vector_candidates(_vector(0), "p", 1)[0].id == a
    finally:
        store.close()


def test_keyword_candidates_use_fts(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        hit, _ = store.insert_or_detect_duplicate(_draft("Fixed the retry loop in sync worker"))
        store.insert_or_detect_duplicate(_draft("Unrelated note about docs"))
        results = store.keyword_candidates('"retry" worker', None, 10)
        assert [r.id for r in results] == [hit]
        assert results[0].score > 0
        assert store.keyword_candidates("   ", None, 10) == []
    finally:
        store.close()


def test_keyword_fallback_scan_scores_by_rank(tmp_path: Path) -> None:
    store = _store(tmp_path, enable_fts=False)
    try:
        assert store.fts_enabled is False
        old, _ = store.insert_or_detect_duplicate(
            _draft("Retry worker backoff tuned", timestamp="2024-01-01T00:00:00Z")
        )
        new, _ = store.insert_or_detect_duplicate(
            _draft("retry WORKER now jittered", timestamp="2024-02-01T00:00:00Z")
        )
        store.insert_or_detect_duplicate(_draft("retry only", timestamp="2024-03-01T00:00:00Z"))

        results = store.keyword_candidates("retry worker", None, 10)
        assert [r.id for r in results] == [new, old]
        assert [r.score for r in results] == pytest.approx([1.0, 0.9])
    finally:
        store.close()


def test_keyword_fallback_scan_folds_unicode_case(tmp_path: Path) -> None:
    store = _store(tmp_path, enable_fts=False)
    try:
        accented, _ = store.insert_or_detect_duplicate(
            _draft("CAFÉ menu parser rewritten", project_id="alpha")
        )
        store.insert_or_detect_duplicate(
            _draft("café parser in beta", index=1, project_id="beta")
        )
        store.insert_or_detect_duplicate(_draft("Straße naming", index=2, project_id="alpha"))

        assert [r.id for r in store.keyword_candidates("café", "alpha", 10)] == [accented]
        assert len(store.keyword_candidates("strasse", "alpha", 10)) == 1
        assert len(store.keyword_candidates("café", None, 1)) == 1
    finally:
        store.close()


def test_keyword_fts_error_falls_back_to_scan(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path)
    try:
        hit, _ = store.insert_or_detect_duplicate(_draft("Pinned sqlite-vec version"))

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("fts5: syntax error")

        monkeypatch.setattr(store_search, "_fts_candidates", broken)
        results = store.keyword_candidates("sqlite-vec", None, 5)
        assert [r.id for r in results] == [hit]
        assert results[0].score == pytest.approx(1.0)
    finally:
        store.close()


def test_check_reports_healthy_store(tmp_path: Path) -> None:
    store = _store(tmp_path)
    try:
        assert store.embedding_dimension() is None
        store.insert_or_detect_duplicate(_draft("dimension probe"))
        report = store.check()
        assert report["ok"] is True
        assert report["integrity"] == "ok"
        assert report["missing_tables"] == []
        assert report["embedding_dimension"] == 8
    finally:
        store.close()


def test_rollback_discards_uncommitted_inserts(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.insert_or_detect_duplicate(_draft("kept"))
    store.flush()
    store.insert_or_detect_duplicate(_draft("dropped"))
    store.rollback()
    store.close()

    reopened = _store(tmp_path)
    try:
        assert [f.content for f in reopened.list_recent(None, 10)] == ["kept"]
    finally:
        reopened.close()
