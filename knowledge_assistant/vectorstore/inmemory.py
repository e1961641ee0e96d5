from __future__ import annotations

"""In-memory embedding index keyed by document."""

import itertools
import logging
import math
import threading
from dataclasses import dataclass
from typing import Sequence

from knowledge_assistant.rag.embeddings import EmbeddingError
from knowledge_assistant.rag.types import Chunk, SearchResult

logger = logging.getLogger(__name__)


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors; zero norms score 0.0."""
    if len(a) != len(b):
        raise EmbeddingError(f"Vector length mismatch: {len(a)} != {len(b)}")
    norm_a = _norm(a)
    norm_b = _norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    return dot / (norm_a * norm_b)


@dataclass(frozen=True)
class _Entry:
    sequence: int
    chunk: Chunk
    norm: float


class InMemoryEmbeddingIndex:
    """Full-scan cosine index with per-document atomic replacement.

    Each document maps to an immutable tuple of entries. Writers build the new
    tuple first and swap it in under a short lock, so a concurrent search sees
    either the complete old chunk set or the complete new one.
    """

    def __init__(self) -> None:
        self._documents: dict[str, tuple[_Entry, ...]] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._dimension: int | None = None

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def upsert(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Replace every chunk stored for ``document_id``."""
        if not chunks:
            self.remove(document_id)
            return 0
        dimension = len(chunks[0].embedding)
        if dimension == 0:
            raise EmbeddingError("Chunk embedding is empty")
        for chunk in chunks:
            if chunk.document_id != document_id:
                raise ValueError(
                    f"Chunk belongs to {chunk.document_id!r}, not {document_id!r}"
                )
            if len(chunk.embedding) != dimension:
                raise EmbeddingError("Chunk embeddings differ in dimension")
        with self._lock:
            if self._dimension is not None and self._dimension != dimension:
                raise EmbeddingError(
                    f"Embedding dimension mismatch: index uses {self._dimension}, got {dimension}"
                )
            entries = tuple(
                _Entry(sequence=next(self._sequence), chunk=chunk, norm=_norm(chunk.embedding))
                for chunk in sorted(chunks, key=lambda item: item.index)
            )
            self._documents[document_id] = entries
            self._dimension = dimension
        logger.debug("index_upsert", extra={"document_id": document_id, "chunks": len(entries)})
        return len(entries)

    def remove(self, document_id: str) -> int:
        """Drop all chunks for a document; absent documents are a no-op."""
        with self._lock:
            removed = self._documents.pop(document_id, ())
            if not self._documents:
                self._dimension = None
        return len(removed)

    def search(self, query_embedding: Sequence[float], top_k: int = 5) -> list[SearchResult]:
        """Return the ``top_k`` chunks most similar to the query vector."""
        if top_k <= 0:
            return []
        with self._lock:
            snapshot = list(self._documents.values())
            dimension = self._dimension
        if not snapshot:
            return []
        if dimension is not None and len(query_embedding) != dimension:
            raise EmbeddingError(
                f"Query dimension mismatch: index uses {dimension}, got {len(query_embedding)}"
            )
        query_norm = _norm(query_embedding)
        scored: list[tuple[float, int, Chunk]] = []
        for entries in snapshot:
            for entry in entries:
                if query_norm == 0.0 or entry.norm == 0.0:
                    score = 0.0
                else:
                    dot = sum(x * y for x, y in zip(query_embedding, entry.chunk.embedding))
                    score = dot / (query_norm * entry.norm)
                scored.append((score, entry.sequence, entry.chunk))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [SearchResult(chunk=chunk, score=score) for score, _, chunk in scored[:top_k]]

    def chunks_for(self, document_id: str) -> list[Chunk]:
        with self._lock:
            entries = self._documents.get(document_id, ())
        return [entry.chunk for entry in entries]

    def stats(self) -> dict[str, int | str | None]:
        """Return basic stats for the index."""
        with self._lock:
            document_count = len(self._documents)
            chunk_count = sum(len(entries) for entries in self._documents.values())
            dimension = self._dimension
        return {
            "backend": "memory",
            "document_count": document_count,
            "chunk_count": chunk_count,
            "embedding_dimension": dimension,
        }

    def health(self) -> dict[str, str | bool]:
        """Return health information for the index."""
        return {
            "backend": "memory",
            "ok": True,
        }
