from __future__ import annotations

from functools import lru_cache

from knowledge_assistant.app.settings import settings
from knowledge_assistant.metadata.store import (
    DocumentStore,
    InMemoryDocumentRepository,
    SQLDocumentStore,
)
from knowledge_assistant.rag.answerer import TemplateAnswerer
from knowledge_assistant.rag.embeddings import EmbeddingProvider, build_embedder
from knowledge_assistant.rag.followups import FollowUpGenerator, RecentQuestions
from knowledge_assistant.rag.pipeline import DocumentIndexer, RAGPipeline
from knowledge_assistant.rag.retriever import HybridRetriever
from knowledge_assistant.rag.streaming import StreamingResponder
from knowledge_assistant.vectorstore.inmemory import InMemoryEmbeddingIndex


@lru_cache
def get_pipeline() -> RAGPipeline:
    embedder = get_embedder()
    index = InMemoryEmbeddingIndex()
    repository = build_document_store()
    retriever = HybridRetriever(
        embedder=embedder,
        index=index,
        semantic_top_k=settings.semantic_top_k,
        keyword_top_k=settings.keyword_top_k,
        semantic_threshold=settings.semantic_threshold,
        semantic_min_score=settings.semantic_min_score,
        keyword_min_score=settings.keyword_min_score,
        keyword_weight=settings.keyword_weight,
        max_candidates=settings.max_candidates,
        embed_timeout=settings.embed_timeout,
    )
    responder = StreamingResponder(
        repository=repository,
        retriever=retriever,
        answerer=TemplateAnswerer(max_candidates=settings.answer_candidates),
        fragment_delay=settings.fragment_delay,
        corpus_timeout=settings.corpus_timeout,
    )
    indexer = DocumentIndexer(
        embedder=embedder,
        index=index,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    follow_ups = FollowUpGenerator(
        recent=RecentQuestions(
            max_sessions=settings.followup_sessions,
            max_per_session=settings.followup_history,
        )
    )
    return RAGPipeline(
        repository=repository,
        indexer=indexer,
        responder=responder,
        follow_ups=follow_ups,
    )


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder(
        settings.embedding_provider,
        settings.embedding_dimension,
        model_name=settings.embedding_model,
    )


def build_document_store() -> DocumentStore:
    if settings.document_db_uri:
        return SQLDocumentStore(settings.document_db_uri)
    return InMemoryDocumentRepository()
