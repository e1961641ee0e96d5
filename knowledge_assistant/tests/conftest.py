from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["RAG_FRAGMENT_DELAY"] = "0"
os.environ.pop("RAG_DOCUMENT_DB_URI", None)
os.environ.setdefault("RAG_METRICS_ENABLED", "true")
os.environ.setdefault("EMBEDDING_DIMENSION", "256")

from knowledge_assistant.metadata.store import InMemoryDocumentRepository  # noqa: E402
from knowledge_assistant.rag.answerer import TemplateAnswerer  # noqa: E402
from knowledge_assistant.rag.embeddings import HashEmbedder  # noqa: E402
from knowledge_assistant.rag.followups import FollowUpGenerator, RecentQuestions  # noqa: E402
from knowledge_assistant.rag.pipeline import DocumentIndexer, RAGPipeline  # noqa: E402
from knowledge_assistant.rag.retriever import HybridRetriever  # noqa: E402
from knowledge_assistant.rag.streaming import StreamingResponder  # noqa: E402
from knowledge_assistant.vectorstore.inmemory import InMemoryEmbeddingIndex  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder(dimension=256)


@pytest.fixture
def index() -> InMemoryEmbeddingIndex:
    return InMemoryEmbeddingIndex()


@pytest.fixture
def repository() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def pipeline(embedder, index, repository) -> RAGPipeline:
    """Fully wired in-memory pipeline with unpaced fragments."""
    retriever = HybridRetriever(embedder=embedder, index=index)
    responder = StreamingResponder(
        repository=repository,
        retriever=retriever,
        answerer=TemplateAnswerer(),
        fragment_delay=0,
    )
    return RAGPipeline(
        repository=repository,
        indexer=DocumentIndexer(embedder=embedder, index=index),
        responder=responder,
        follow_ups=FollowUpGenerator(recent=RecentQuestions()),
    )
