from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from . import semantic
from .config import CortexConfig, load_config
from .store import FragmentStore

logger = logging.getLogger(__name__)


@dataclass
class MemoryContext:
    """Handles owned by one invocation: config snapshot, open store, embedder."""

    config: CortexConfig
    store: FragmentStore
    _embedder: semantic.EmbeddingClient | None = field(default=None, repr=False)

    @property
    def embedder(self) -> semantic.EmbeddingClient:
        if self._embedder is None:
            self._embedder = semantic.get_embedding_client(
                self.config.embedding_model, self.config.embedding_dim
            )
        return self._embedder


@contextmanager
def open_context(
    config: CortexConfig | None = None,
    *,
    db_path: Path | str | None = None,
    embedder: semantic.EmbeddingClient | None = None,
) -> Iterator[MemoryContext]:
    """Open the store for one invocation; commit once on success, roll back on error."""
    cfg = config or load_config()
    path = Path(db_path).expanduser() if db_path else cfg.resolved_db_path()
    store = FragmentStore(path, embedding_dim=cfg.embedding_dim)
    ctx = MemoryContext(config=cfg, store=store, _embedder=embedder)
    try:
        yield ctx
        store.flush()
    except BaseException:
        logger.debug("rolling back %s", path)
        store.rollback()
        raise
    finally:
        store.close()
