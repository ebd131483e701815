from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Iterator, Sequence
from pathlib import Path

import pytest

from cortexmem import semantic
from cortexmem.config import CONFIG_ENV_OVERRIDES, CortexConfig
from cortexmem.context import MemoryContext, open_context


class FakeEmbeddingClient:
    """Hashing bag-of-words vectors; deterministic and model-free."""

    model = "fake-bow"

    def __init__(self, dimension: int = 384) -> None:
        self.dimension = dimension
        self.calls: list[tuple[str, list[str]]] = []

    def embed(self, texts: Sequence[str], role: str) -> list[list[float]]:
        self.calls.append((role, list(texts)))
        return [self.vector(text) for text in texts]

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimension
        values[0] = 0.5
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            values[1 + int.from_bytes(digest[:4], "big") % (self.dimension - 1)] += 1.0
        norm = math.sqrt(sum(v * v for v in values))
        return [v / norm for v in values]


@pytest.fixture(autouse=True)
def _isolate_cortex_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("CORTEX_PROJECT", raising=False)
    monkeypatch.setenv("CORTEX_DATA_DIR", str(tmp_path / "cortex-data"))
    monkeypatch.setenv("CORTEX_CONFIG", str(tmp_path / "cortex-data" / "config.json"))


@pytest.fixture
def fake_embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def patch_embedder(
    monkeypatch: pytest.MonkeyPatch, fake_embedder: FakeEmbeddingClient
) -> FakeEmbeddingClient:
    monkeypatch.setattr(semantic, "get_embedding_client", lambda model, dimension: fake_embedder)
    return fake_embedder


@pytest.fixture
def memory_context(
    tmp_path: Path, fake_embedder: FakeEmbeddingClient
) -> Iterator[MemoryContext]:
    with open_context(
        CortexConfig(), db_path=tmp_path / "mem.sqlite", embedder=fake_embedder
    ) as ctx:
        yield ctx
