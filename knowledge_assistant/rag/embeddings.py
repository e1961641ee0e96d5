from __future__ import annotations

"""Embedding providers for note chunks and queries."""

import hashlib
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

_WORD_RE = re.compile(r"[a-z0-9]+")


class EmbeddingError(RuntimeError):
    """An embedding could not be produced or is unusable."""
    pass


class EmbeddingConfigError(RuntimeError):
    """The configured embedding provider cannot be built."""
    pass


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-width vector."""
    dimension: int

    def embed(self, text: str) -> list[float]:
        ...


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Return ``vector`` as floats, rejecting wrong widths and non-finite values."""
    if len(vector) != dimension:
        raise EmbeddingError(f"Expected {dimension} components, got {len(vector)}")
    floats: list[float] = []
    for component in vector:
        if isinstance(component, bool) or not isinstance(component, (int, float)):
            raise EmbeddingError(f"Non-numeric embedding component: {component!r}")
        if not math.isfinite(component):
            raise EmbeddingError("Embedding has NaN or infinite components")
        floats.append(float(component))
    return floats


def _bucket(word: str, dimension: int) -> int:
    digest = hashlib.sha256(word.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % dimension


def _unit_length(vector: list[float]) -> list[float]:
    length = math.sqrt(sum(component * component for component in vector))
    if length == 0.0:
        return vector
    return [component / length for component in vector]


@dataclass
class HashEmbedder:
    """Bag-of-words feature hashing; needs no model files and is stable across runs."""
    dimension: int = 384

    def embed(self, text: str) -> list[float]:
        counts = Counter(_WORD_RE.findall(text.lower()))
        vector = [0.0] * self.dimension
        for word, count in counts.items():
            vector[_bucket(word, self.dimension)] += float(count)
        # Text without words maps to the zero vector, which scores 0.0 against everything.
        return validate_vector(_unit_length(vector), self.dimension)


@dataclass
class SentenceTransformerEmbedder:
    """Local embedding model served through sentence-transformers."""
    model_name: str
    device: str | None = None
    dimension: int = field(init=False, default=0)
    model: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Load the model and record its output dimension."""
        if not self.model_name:
            raise EmbeddingConfigError("EMBEDDING_MODEL is required for local embeddings")
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise EmbeddingError(
                "Install the 'local' extra (sentence-transformers) to use local embeddings"
            ) from exc
        self.model = SentenceTransformer(self.model_name, device=self.device)
        dimension = self.model.get_sentence_embedding_dimension()
        if not dimension:
            raise EmbeddingConfigError(f"Model {self.model_name} does not report a dimension")
        self.dimension = int(dimension)

    def embed(self, text: str) -> list[float]:
        try:
            encoded = self.model.encode(text, normalize_embeddings=True, show_progress_bar=False)
        except Exception as exc:
            raise EmbeddingError(f"Local embedding failed: {type(exc).__name__}") from exc
        return validate_vector([float(component) for component in encoded], self.dimension)


def build_embedder(provider: str, dimension: int, model_name: str | None = None) -> EmbeddingProvider:
    """Select an embedder by provider name (``hash`` or ``sentence-transformers``)."""
    name = provider.strip().lower()
    if name in {"", "hash"}:
        if dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be positive for hash embeddings")
        return HashEmbedder(dimension=dimension)
    if name in {"sentence-transformers", "sentence_transformers", "local"}:
        return SentenceTransformerEmbedder(model_name=model_name or "")
    raise EmbeddingConfigError(f"Unknown EMBEDDING_PROVIDER {provider!r}")
