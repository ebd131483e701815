from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Literal, Protocol

import sqlite_vec

logger = logging.getLogger(__name__)

EmbeddingRole = Literal["query", "passage"]

FINGERPRINT_LENGTH = 16


class EmbeddingError(RuntimeError):
    pass


class EmbeddingClient(Protocol):
    model: str
    dimension: int

    def embed(self, texts: Sequence[str], role: EmbeddingRole) -> list[list[float]]: ...


class _FastEmbedClient:
    """fastembed-backed client; queries and passages use the model's asymmetric encoders."""

    def __init__(self, model: str, dimension: int) -> None:
        try:
            from fastembed import TextEmbedding
        except Exception as exc:  # pragma: no cover
            raise EmbeddingError("fastembed is required for embeddings") from exc
        self.model = model
        self.dimension = dimension
        self._embedder = TextEmbedding(model_name=model)

    def embed(self, texts: Sequence[str], role: EmbeddingRole) -> list[list[float]]:
        if role == "query":
            embeddings = self._embedder.query_embed(list(texts))
        else:
            embeddings = self._embedder.passage_embed(list(texts))
        return [[float(x) for x in vec] for vec in embeddings]


def get_embedding_client(model: str, dimension: int) -> EmbeddingClient:
    try:
        return _FastEmbedClient(model=model, dimension=dimension)
    except EmbeddingError:
        raise
    except Exception as exc:
        raise EmbeddingError(f"failed to load embedding model {model}") from exc


def _check_vector(vector: Sequence[float], dimension: int) -> list[float]:
    if len(vector) != dimension:
        raise EmbeddingError(
            f"embedding has dimension {len(vector)}, expected {dimension}"
        )
    return [float(x) for x in vector]


def embed_query(client: EmbeddingClient, text: str) -> list[float]:
    vectors = client.embed([text], "query")
    if len(vectors) != 1:
        raise EmbeddingError(f"expected 1 query embedding, got {len(vectors)}")
    return _check_vector(vectors[0], client.dimension)


def embed_passages(
    client: EmbeddingClient,
    texts: Sequence[str],
    *,
    batch_size: int = 32,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[list[float]]:
    """Embed texts in sequential batches, preserving order 1:1.

    Any failure aborts the whole call; callers never see a partial set.
    """
    total = len(texts)
    results: list[list[float]] = []
    for start in range(0, total, max(batch_size, 1)):
        batch = list(texts[start : start + batch_size])
        try:
            vectors = client.embed(batch, "passage")
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                f"embedding failed for batch starting at index {start}"
            ) from exc
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"embedding batch returned {len(vectors)} vectors for {len(batch)} texts"
            )
        results.extend(_check_vector(vec, client.dimension) for vec in vectors)
        if on_progress:
            on_progress(min(start + len(batch), total), total)
    logger.debug("embedded %d passages", len(results))
    return results


def serialize(vector: Iterable[float]) -> bytes:
    return sqlite_vec.serialize_float32(list(vector))


def hash_text(text: str) -> str:
    digest = hashlib.sha256(text.strip().encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
