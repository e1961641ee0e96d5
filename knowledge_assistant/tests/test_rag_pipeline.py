from __future__ import annotations

import asyncio
import threading
import time

import pytest

from knowledge_assistant.metadata.store import DocumentNotFoundError
from knowledge_assistant.rag.embeddings import EmbeddingError, HashEmbedder
from knowledge_assistant.rag.types import Document
from knowledge_assistant.rag.types import QuestionIntent, TurnStatus

pytestmark = pytest.mark.anyio


class FailingEmbedder:
    dimension = 256

    def embed(self, text):
        raise EmbeddingError("embedding backend unavailable")


class OverlapTrackingEmbedder:
    """Counts how many embed calls run at the same time."""

    def __init__(self) -> None:
        self.inner = HashEmbedder(dimension=256)
        self.dimension = self.inner.dimension
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def embed(self, text):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.01)
        with self._lock:
            self.active -= 1
        return self.inner.embed(text)


async def test_retrieval_returns_grounded_answer(pipeline) -> None:
    await pipeline.add_document(
        "France", "Paris is the capital of France. It is known for the Eiffel Tower."
    )
    await pipeline.add_document("Garden", "Tomatoes need full sun. Water them every morning.")

    result = await pipeline.answer("What is the capital of France?")

    assert result.status is TurnStatus.ANSWERED
    assert result.intent is QuestionIntent.DEFINITION
    assert "Paris" in result.candidates[0].text
    assert "Paris" in result.answer
    assert "".join(result.fragments) == result.answer


async def test_empty_corpus_needs_external_search(pipeline) -> None:
    result = await pipeline.answer("What is the capital of France?")

    assert result.status is TurnStatus.NO_LOCAL_DATA
    assert result.reason == "no_documents"
    assert result.candidates == []


async def test_count_question_reports_numbers(pipeline) -> None:
    await pipeline.add_document("Pets", "There are 3 cats and 12 dogs at the shelter.")

    result = await pipeline.answer("How many dogs are at the shelter?")

    assert result.intent is QuestionIntent.COUNT
    assert result.answer.startswith("I found these numbers: ")
    assert "12" in result.answer


async def test_reingest_replaces_chunks(pipeline) -> None:
    pipeline.indexer.chunk_size = 40
    document = await pipeline.add_document(
        "Notes", "First note is here. Second note is here. Third note is here.", doc_id="notes"
    )
    before = len(pipeline.indexer.index.chunks_for(document.doc_id))

    await pipeline.add_document("Notes", "Only one short note.", doc_id="notes")

    chunks = pipeline.indexer.index.chunks_for("notes")
    assert before > 1
    assert [chunk.text for chunk in chunks] == ["Only one short note."]


async def test_delete_document_unindexes_first(pipeline) -> None:
    await pipeline.add_document("France", "Paris is the capital of France.", doc_id="france")

    assert await pipeline.delete_document("france") is True
    assert pipeline.indexer.index.chunks_for("france") == []
    assert pipeline.repository.get_by_id("france") is None
    assert await pipeline.delete_document("france") is False


async def test_summary_is_generated_once_and_cached(pipeline) -> None:
    await pipeline.add_document(
        "Trip", "We visited Paris in May. The weather was mild.", doc_id="trip"
    )

    summary = await pipeline.summarize_document("trip")
    pipeline.repository.update_summary("trip", "cached summary")

    assert summary == "• We visited Paris in May.\n• The weather was mild."
    assert await pipeline.summarize_document("trip") == "cached summary"


async def test_summary_of_missing_document_raises(pipeline) -> None:
    with pytest.raises(DocumentNotFoundError):
        await pipeline.summarize_document("missing")


async def test_reindex_all_rebuilds_index(pipeline) -> None:
    pipeline.repository.add("France", "Paris is the capital of France.", doc_id="france")
    pipeline.repository.add("Garden", "Tomatoes need full sun.", doc_id="garden")

    total = await pipeline.reindex_all()

    assert total == 2
    assert pipeline.indexer.index.stats()["document_count"] == 2


async def test_suggest_follow_ups_after_answer(pipeline) -> None:
    await pipeline.add_document("France", "Paris is the capital of France.")
    result = await pipeline.answer("What is the capital of France?")

    follow_ups = pipeline.suggest_follow_ups(result.query, result.answer)

    assert 0 < len(follow_ups) <= 3


async def test_failed_embedding_stores_nothing(pipeline) -> None:
    pipeline.indexer.embedder = FailingEmbedder()

    with pytest.raises(EmbeddingError):
        await pipeline.add_document("France", "Paris is the capital of France.", doc_id="fr")

    assert pipeline.repository.list_all() == []
    assert pipeline.indexer.index.chunks_for("fr") == []


async def test_failed_reingest_keeps_previous_version(pipeline) -> None:
    await pipeline.add_document("France", "Paris is the capital of France.", doc_id="fr")
    pipeline.indexer.embedder = FailingEmbedder()

    with pytest.raises(EmbeddingError):
        await pipeline.add_document("France", "Lyon is a city in France.", doc_id="fr")

    assert pipeline.repository.get_by_id("fr").content == "Paris is the capital of France."
    assert [chunk.text for chunk in pipeline.indexer.index.chunks_for("fr")] == [
        "Paris is the capital of France."
    ]


async def test_concurrent_ingests_of_one_document_are_serialized(pipeline) -> None:
    embedder = OverlapTrackingEmbedder()
    pipeline.indexer.embedder = embedder
    pipeline.indexer.chunk_size = 30
    pipeline.indexer.chunk_overlap = 0
    first = Document(
        doc_id="notes",
        title="Notes",
        content="First draft one. First draft two. First draft three.",
    )
    second = Document(
        doc_id="notes",
        title="Notes",
        content="Second draft one. Second draft two. Second draft three.",
    )

    await asyncio.gather(pipeline.indexer.ingest(first), pipeline.indexer.ingest(second))

    chunks = pipeline.indexer.index.chunks_for("notes")
    assert embedder.max_active == 1
    assert chunks
    assert all(chunk.text.startswith("Second draft") for chunk in chunks)
