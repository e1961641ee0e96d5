from __future__ import annotations

from dataclasses import dataclass

from knowledge_assistant.rag.types import Candidate, Document


@dataclass(frozen=True)
class GuardrailResult:
    allowed: bool
    reason: str


def check_query(query: str) -> GuardrailResult:
    if not query.strip():
        return GuardrailResult(allowed=False, reason="empty_query")
    return GuardrailResult(allowed=True, reason="ok")


def require_corpus(documents: list[Document]) -> GuardrailResult:
    if not documents:
        return GuardrailResult(allowed=False, reason="no_documents")
    return GuardrailResult(allowed=True, reason="ok")


def require_candidates(candidates: list[Candidate]) -> GuardrailResult:
    if not candidates:
        return GuardrailResult(allowed=False, reason="no_candidates")
    if all(not candidate.text.strip() for candidate in candidates):
        return GuardrailResult(allowed=False, reason="empty_candidates")
    return GuardrailResult(allowed=True, reason="ok")


def require_answer(answer: str) -> GuardrailResult:
    if not answer.strip():
        return GuardrailResult(allowed=False, reason="empty_answer")
    return GuardrailResult(allowed=True, reason="ok")
