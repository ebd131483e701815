from __future__ import annotations

from ._store import FragmentStore
from .sessions import AutoSaveState
from .types import Candidate, Fragment, FragmentDraft, FragmentStats, ProjectStats, SearchResult

__all__ = [
    "AutoSaveState",
    "Candidate",
    "Fragment",
    "FragmentDraft",
    "FragmentStats",
    "FragmentStore",
    "ProjectStats",
    "SearchResult",
]
