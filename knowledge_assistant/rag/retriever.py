from __future__ import annotations

"""Hybrid retrieval that merges vector and keyword matches."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from knowledge_assistant.loaders.chunking import normalize_text
from knowledge_assistant.rag.embeddings import EmbeddingProvider
from knowledge_assistant.rag.lexical import extract_keywords, score_sentence, split_sentences
from knowledge_assistant.rag.types import Candidate, CandidateOrigin, Document
from knowledge_assistant.vectorstore.inmemory import InMemoryEmbeddingIndex

logger = logging.getLogger(__name__)


def dedup_key(text: str) -> str:
    """Case- and whitespace-insensitive identity of a candidate text."""
    return normalize_text(text).lower()


@dataclass
class HybridRetriever:
    """Blend semantic and lexical candidates into one ranked list.

    Semantic candidates always come first and win text collisions; lexical
    candidates are discounted by ``keyword_weight`` and must clear a higher
    merge bar because their scores are coarse ratios.
    """
    embedder: EmbeddingProvider
    index: InMemoryEmbeddingIndex
    semantic_top_k: int = 8
    keyword_top_k: int = 8
    semantic_threshold: float = 0.2
    semantic_min_score: float = 0.1
    keyword_min_score: float = 0.15
    keyword_weight: float = 0.8
    max_candidates: int = 10
    embed_timeout: float = 30.0

    async def retrieve(self, query: str, documents: Sequence[Document]) -> list[Candidate]:
        """Return up to ``max_candidates`` de-duplicated candidates."""
        if not query.strip():
            return []
        titles = {document.doc_id: document.title for document in documents}
        semantic = await self.semantic_pass(query, titles)
        lexical = self.lexical_pass(query, documents)
        merged = self.merge(semantic, lexical)
        logger.info(
            "retrieval_complete",
            extra={
                "semantic": len(semantic),
                "keyword": len(lexical),
                "merged": len(merged),
                "query_length": len(query),
            },
        )
        return merged

    async def semantic_pass(self, query: str, titles: dict[str, str]) -> list[Candidate]:
        """Vector search; any embedding or index failure yields no results."""
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self.embedder.embed, query), timeout=self.embed_timeout
            )
            results = self.index.search(vector, top_k=self.semantic_top_k)
        except asyncio.TimeoutError:
            logger.warning("semantic_search_timeout", extra={"timeout": self.embed_timeout})
            return []
        except Exception as exc:
            logger.warning("semantic_search_failed", extra={"detail": type(exc).__name__})
            return []
        candidates = [
            Candidate(
                text=result.chunk.text,
                score=result.score,
                origin=CandidateOrigin.SEMANTIC,
                document_id=result.chunk.document_id,
                document_title=titles.get(result.chunk.document_id, ""),
            )
            for result in results
            if result.score >= self.semantic_threshold
        ]
        return sorted(candidates, key=lambda candidate: candidate.score, reverse=True)

    def lexical_pass(self, query: str, documents: Sequence[Document]) -> list[Candidate]:
        """Score every document sentence by keyword density."""
        keywords = extract_keywords(query)
        if not keywords:
            return []
        candidates: list[Candidate] = []
        for document in documents:
            for sentence in split_sentences(document.content):
                try:
                    score = score_sentence(sentence, keywords)
                except Exception as exc:
                    logger.warning(
                        "keyword_score_failed",
                        extra={"document_id": document.doc_id, "detail": type(exc).__name__},
                    )
                    continue
                if score <= 0:
                    continue
                candidates.append(
                    Candidate(
                        text=sentence.strip(),
                        score=score * self.keyword_weight,
                        origin=CandidateOrigin.KEYWORD,
                        document_id=document.doc_id,
                        document_title=document.title,
                    )
                )
        candidates.sort(key=lambda candidate: candidate.score, reverse=True)
        return candidates[: self.keyword_top_k]

    def merge(self, semantic: list[Candidate], lexical: list[Candidate]) -> list[Candidate]:
        """Semantic first, then non-colliding lexical, capped at ``max_candidates``."""
        merged: list[Candidate] = []
        seen: set[str] = set()
        for candidate in sorted(semantic, key=lambda item: item.score, reverse=True):
            key = dedup_key(candidate.text)
            if key in seen or candidate.score <= self.semantic_min_score:
                continue
            seen.add(key)
            merged.append(candidate)
        for candidate in sorted(lexical, key=lambda item: item.score, reverse=True):
            key = dedup_key(candidate.text)
            if key in seen or candidate.score <= self.keyword_min_score:
                continue
            seen.add(key)
            merged.append(candidate)
        return merged[: self.max_candidates]
