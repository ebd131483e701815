from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypedDict

Provenance = Literal["vector", "keyword", "hybrid"]


@dataclass
class Fragment:
    id: int
    content: str
    content_hash: str
    project_id: str | None
    source_session: str
    timestamp: str
    created_at: str


@dataclass
class FragmentDraft:
    content: str
    embedding: list[float]
    source_session: str
    project_id: str | None = None
    timestamp: str | None = None


@dataclass
class Candidate:
    """One entry of a ranked candidate list, before fusion."""

    id: int
    content: str
    score: float
    timestamp: str
    project_id: str | None


@dataclass
class SearchResult:
    id: int
    content: str
    score: float
    fused_score: float
    provenance: Provenance
    timestamp: str
    project_id: str | None


class FragmentStats(TypedDict):
    fragment_count: int
    session_count: int
    oldest: str | None
    newest: str | None
    size_bytes: int


class ProjectStats(TypedDict):
    project_id: str | None
    fragment_count: int
    session_count: int
    last_archive: str | None
