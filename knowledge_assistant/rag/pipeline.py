from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field

from knowledge_assistant.loaders.chunking import segment_text
from knowledge_assistant.metadata.store import DocumentNotFoundError, DocumentStore
from knowledge_assistant.rag.answerer import SummarizingAnswerer
from knowledge_assistant.rag.embeddings import EmbeddingProvider
from knowledge_assistant.rag.followups import FollowUpGenerator
from knowledge_assistant.rag.streaming import StreamingResponder
from knowledge_assistant.rag.types import Chunk, Document, FollowUpQuestion, TurnResult
from knowledge_assistant.vectorstore.inmemory import InMemoryEmbeddingIndex

logger = logging.getLogger(__name__)


@dataclass
class DocumentIndexer:
    """Segment, embed and index documents one at a time per document id."""
    embedder: EmbeddingProvider
    index: InMemoryEmbeddingIndex
    chunk_size: int = 256
    chunk_overlap: int = 25
    _locks: defaultdict[str, asyncio.Lock] = field(
        default_factory=lambda: defaultdict(asyncio.Lock), init=False, repr=False
    )

    def lock_for(self, document_id: str) -> asyncio.Lock:
        """Lock held by every writer of ``document_id``."""
        return self._locks[document_id]

    async def embed(self, document: Document) -> list[Chunk]:
        """Segment and embed a document without touching the index."""
        chunks: list[Chunk] = []
        texts = segment_text(document.content, self.chunk_size, self.chunk_overlap)
        for index, text in enumerate(texts):
            vector = await asyncio.to_thread(self.embedder.embed, text)
            chunks.append(
                Chunk(
                    document_id=document.doc_id,
                    index=index,
                    text=text,
                    embedding=tuple(vector),
                )
            )
        return chunks

    def apply(self, document_id: str, chunks: list[Chunk]) -> int:
        """Swap in a fully embedded chunk set."""
        count = self.index.upsert(document_id, chunks)
        logger.info(
            "document_indexed",
            extra={"document_id": document_id, "chunk_count": count},
        )
        return count

    async def ingest(self, document: Document) -> int:
        """Replace the indexed chunks of a document; returns the chunk count."""
        async with self.lock_for(document.doc_id):
            # Nothing is visible until every chunk of the document is embedded.
            chunks = await self.embed(document)
            return self.apply(document.doc_id, chunks)

    async def remove(self, document_id: str) -> int:
        async with self.lock_for(document_id):
            removed = self.index.remove(document_id)
        logger.info("document_unindexed", extra={"document_id": document_id, "chunks": removed})
        return removed


@dataclass
class RAGPipeline:
    repository: DocumentStore
    indexer: DocumentIndexer
    responder: StreamingResponder
    follow_ups: FollowUpGenerator
    summarizer: SummarizingAnswerer = field(default_factory=SummarizingAnswerer)

    async def add_document(self, title: str, content: str, doc_id: str | None = None) -> Document:
        """Embed, then persist and index a document.

        Embedding runs before anything is stored, so a failing embedder leaves
        both the repository and the index as they were.
        """
        draft = Document(doc_id=doc_id or str(uuid.uuid4()), title=title, content=content)
        async with self.indexer.lock_for(draft.doc_id):
            chunks = await self.indexer.embed(draft)
            document = await asyncio.to_thread(
                self.repository.add, title, content, draft.doc_id
            )
            self.indexer.apply(document.doc_id, chunks)
        return document

    async def delete_document(self, doc_id: str) -> bool:
        """Unindex first, then delete from the repository."""
        await self.indexer.remove(doc_id)
        return await asyncio.to_thread(self.repository.delete, doc_id)

    async def reindex_all(self) -> int:
        """Index every stored document; used at startup for persistent stores."""
        documents = await asyncio.to_thread(self.repository.list_all)
        total = 0
        for document in documents:
            total += await self.indexer.ingest(document)
        return total

    async def summarize_document(self, doc_id: str) -> str:
        """Return the cached summary or build and cache an extractive one."""
        document = await asyncio.to_thread(self.repository.get_by_id, doc_id)
        if document is None:
            raise DocumentNotFoundError(doc_id)
        if document.summary:
            return document.summary
        summary = self.summarizer.summarize(document)
        if summary:
            await asyncio.to_thread(self.repository.update_summary, doc_id, summary)
        return summary

    async def answer(self, query: str, cancel: asyncio.Event | None = None) -> TurnResult:
        return await self.responder.collect(query, cancel)

    def suggest_follow_ups(
        self, query: str, answer: str, session_id: str | None = None
    ) -> list[FollowUpQuestion]:
        return self.follow_ups.generate(query, answer, session_id=session_id)
