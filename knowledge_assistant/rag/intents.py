from __future__ import annotations

"""Rule-based question intent classification."""

from knowledge_assistant.rag.types import QuestionIntent

# Checked in order; the first intent with a matching phrase wins.
INTENT_TRIGGERS: tuple[tuple[QuestionIntent, tuple[str, ...]], ...] = (
    (QuestionIntent.SUMMARY, ("summarize", "summary", "brief")),
    (QuestionIntent.LIST, ("list", "name", "what are", "which")),
    (QuestionIntent.DEFINITION, ("what is", "what's", "define")),
    (QuestionIntent.HOW_TO, ("how to", "how do", "steps")),
    (QuestionIntent.REASON, ("why", "because", "reason")),
    (QuestionIntent.YES_NO, ("is there", "are there", "can i")),
    (QuestionIntent.COUNT, ("how many", "count", "number of")),
    (QuestionIntent.COMPARISON, ("compare", "difference", "versus", "vs ")),
)


def classify_question(query: str) -> QuestionIntent:
    """Map a query to the intent of the first matching trigger phrase."""
    lowered = query.strip().lower()
    for intent, phrases in INTENT_TRIGGERS:
        if any(phrase in lowered for phrase in phrases):
            return intent
    return QuestionIntent.INFORMATIONAL
