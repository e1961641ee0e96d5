from __future__ import annotations

import time

import pytest

from knowledge_assistant.rag.embeddings import HashEmbedder
from knowledge_assistant.rag.pipeline import DocumentIndexer
from knowledge_assistant.rag.retriever import HybridRetriever, dedup_key
from knowledge_assistant.rag.types import Candidate, CandidateOrigin, Document
from knowledge_assistant.vectorstore.inmemory import InMemoryEmbeddingIndex

pytestmark = pytest.mark.anyio


class FailingEmbedder:
    dimension = 256

    def embed(self, text: str) -> list[float]:
        raise RuntimeError("model unavailable")


class SlowEmbedder:
    dimension = 256

    def embed(self, text: str) -> list[float]:
        time.sleep(0.3)
        return HashEmbedder(dimension=256).embed(text)


def _candidate(text: str, score: float, origin: CandidateOrigin) -> Candidate:
    return Candidate(text=text, score=score, origin=origin, document_id="doc")


FRANCE = Document(
    doc_id="france",
    title="France",
    content="Paris is the capital of France. It is known for the Eiffel Tower.",
)


async def _indexed(documents: list[Document]) -> InMemoryEmbeddingIndex:
    index = InMemoryEmbeddingIndex()
    indexer = DocumentIndexer(embedder=HashEmbedder(dimension=256), index=index)
    for document in documents:
        await indexer.ingest(document)
    return index


async def test_retrieve_blends_semantic_and_keyword(embedder) -> None:
    index = await _indexed([FRANCE])
    retriever = HybridRetriever(embedder=embedder, index=index)

    candidates = await retriever.retrieve("What is the capital of France?", [FRANCE])

    assert candidates[0].origin is CandidateOrigin.SEMANTIC
    assert "Paris" in candidates[0].text
    assert candidates[0].document_title == "France"
    keyword = [c for c in candidates if c.origin is CandidateOrigin.KEYWORD]
    assert keyword and keyword[0].text == "Paris is the capital of France."
    assert keyword[0].score == pytest.approx(0.8)


async def test_retrieve_empty_query_returns_nothing(embedder) -> None:
    index = await _indexed([FRANCE])
    retriever = HybridRetriever(embedder=embedder, index=index)

    assert await retriever.retrieve("   ", [FRANCE]) == []


async def test_retrieve_caps_candidates_without_collisions(embedder) -> None:
    documents = [
        Document(
            doc_id=f"garden-{n}",
            title=f"Garden {n}",
            content=" ".join(
                f"Tomatoes grow well in garden bed {n}-{i}." for i in range(8)
            ),
        )
        for n in range(4)
    ]
    index = await _indexed(documents)
    retriever = HybridRetriever(
        embedder=embedder, index=index, semantic_top_k=50, keyword_top_k=50
    )

    candidates = await retriever.retrieve("tomatoes garden", documents)

    assert 0 < len(candidates) <= 10
    keys = [dedup_key(candidate.text) for candidate in candidates]
    assert len(keys) == len(set(keys))


async def test_embedder_failure_degrades_to_keyword_only() -> None:
    index = await _indexed([FRANCE])
    retriever = HybridRetriever(embedder=FailingEmbedder(), index=index)

    candidates = await retriever.retrieve("capital of France", [FRANCE])

    assert candidates
    assert all(candidate.origin is CandidateOrigin.KEYWORD for candidate in candidates)


async def test_embedder_timeout_degrades_to_keyword_only() -> None:
    index = await _indexed([FRANCE])
    retriever = HybridRetriever(embedder=SlowEmbedder(), index=index, embed_timeout=0.05)

    candidates = await retriever.retrieve("capital of France", [FRANCE])

    assert candidates
    assert all(candidate.origin is CandidateOrigin.KEYWORD for candidate in candidates)


def test_merge_prefers_semantic_on_collision(embedder, index) -> None:
    retriever = HybridRetriever(embedder=embedder, index=index)
    semantic = [_candidate("Paris is  the capital.", 0.5, CandidateOrigin.SEMANTIC)]
    lexical = [
        _candidate("paris is the CAPITAL.", 0.8, CandidateOrigin.KEYWORD),
        _candidate("Lyon is large.", 0.4, CandidateOrigin.KEYWORD),
    ]

    merged = retriever.merge(semantic, lexical)

    assert [candidate.origin for candidate in merged] == [
        CandidateOrigin.SEMANTIC,
        CandidateOrigin.KEYWORD,
    ]
    assert merged[1].text == "Lyon is large."


def test_merge_applies_minimum_scores(embedder, index) -> None:
    retriever = HybridRetriever(embedder=embedder, index=index)
    semantic = [_candidate("Weak semantic hit.", 0.1, CandidateOrigin.SEMANTIC)]
    lexical = [_candidate("Weak keyword hit.", 0.15, CandidateOrigin.KEYWORD)]

    assert retriever.merge(semantic, lexical) == []


def test_lexical_pass_without_keywords_is_empty(embedder, index) -> None:
    retriever = HybridRetriever(embedder=embedder, index=index)

    assert retriever.lexical_pass("what is it?", [FRANCE]) == []
