from __future__ import annotations

"""Template answerers that turn ranked candidates into answer text."""

import re
from dataclasses import dataclass
from typing import Callable

from knowledge_assistant.rag.lexical import extract_keywords, split_sentences
from knowledge_assistant.rag.types import Candidate, Document, QuestionIntent

BULLET = "•"

_LIST_SPLIT_RE = re.compile(r"[\n;,]")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_NUMBER_RE = re.compile(r"\d+")
_POSITIVE_RE = re.compile(r"\b(?:yes|can|possible)\b")
_NEGATIVE_RE = re.compile(r"\b(?:no|cannot|can't|not possible)\b")

DEFINITION_CUES = ("is defined", "means", "refers to")
STEP_CUES = ("first", "step", "then", "next")
REASON_CUES = ("because", "reason", "due to")
COMPARISON_CUES = ("vs", "versus", "compared")


def _bullets(items: list[str]) -> str:
    return "\n".join(f"{BULLET} {item}" for item in items)


def _sentences(text: str) -> list[str]:
    return [part.strip() for part in _SENTENCE_RE.split(text) if part.strip()]


def _containing(candidates: list[Candidate], cues: tuple[str, ...]) -> list[Candidate]:
    return [
        candidate
        for candidate in candidates
        if any(cue in candidate.text.lower() for cue in cues)
    ]


@dataclass
class TemplateAnswerer:
    """Render the top candidates with an intent-specific template."""
    max_candidates: int = 3
    max_list_items: int = 5
    max_steps: int = 3
    max_numbers: int = 5

    def generate(
        self, query: str, candidates: list[Candidate], intent: QuestionIntent
    ) -> str:
        """Generate an answer; an empty string means nothing could be answered."""
        if not candidates:
            return ""
        top = candidates[: self.max_candidates]
        strategy = self._strategies().get(intent, self._informational)
        return strategy(query, top).strip()

    def _strategies(self) -> dict[QuestionIntent, Callable[[str, list[Candidate]], str]]:
        return {
            QuestionIntent.SUMMARY: self._summary,
            QuestionIntent.LIST: self._list,
            QuestionIntent.DEFINITION: self._definition,
            QuestionIntent.HOW_TO: self._how_to,
            QuestionIntent.REASON: self._reason,
            QuestionIntent.YES_NO: self._yes_no,
            QuestionIntent.COUNT: self._count,
            QuestionIntent.COMPARISON: self._comparison,
            QuestionIntent.INFORMATIONAL: self._informational,
        }

    def _summary(self, query: str, candidates: list[Candidate]) -> str:
        points = [candidate.text for candidate in candidates[:2]]
        return f"Based on your documents:\n\n{_bullets(points)}"

    def _list(self, query: str, candidates: list[Candidate]) -> str:
        items: list[str] = []
        for candidate in candidates:
            for part in _LIST_SPLIT_RE.split(candidate.text):
                item = part.strip()
                if 5 < len(item) < 100 and item not in items:
                    items.append(item)
        if items:
            return f"Here are the key items:\n\n{_bullets(items[: self.max_list_items])}"
        return f"Here's what I found:\n\n{candidates[0].text}"

    def _definition(self, query: str, candidates: list[Candidate]) -> str:
        matches = _containing(candidates, DEFINITION_CUES)
        return (matches[0] if matches else candidates[0]).text

    def _how_to(self, query: str, candidates: list[Candidate]) -> str:
        steps: list[str] = []
        for candidate in candidates:
            for sentence in _sentences(candidate.text):
                lowered = sentence.lower()
                if any(cue in lowered for cue in STEP_CUES) or lowered.startswith("to "):
                    steps.append(sentence)
        if steps:
            return "Here's how:\n\n" + "\n".join(steps[: self.max_steps])
        return candidates[0].text

    def _reason(self, query: str, candidates: list[Candidate]) -> str:
        reasons = [candidate.text for candidate in _containing(candidates, REASON_CUES)[:2]]
        if reasons:
            return "The reason is:\n\n" + "\n\n".join(reasons)
        return candidates[0].text

    def _yes_no(self, query: str, candidates: list[Candidate]) -> str:
        has_positive = any(_POSITIVE_RE.search(c.text.lower()) for c in candidates)
        has_negative = any(_NEGATIVE_RE.search(c.text.lower()) for c in candidates)
        if has_positive and not has_negative:
            return "Yes, based on your documents."
        if has_negative and not has_positive:
            return "No, based on your documents."
        return candidates[0].text

    def _count(self, query: str, candidates: list[Candidate]) -> str:
        numbers: list[str] = []
        for candidate in candidates:
            for match in _NUMBER_RE.findall(candidate.text):
                if match not in numbers:
                    numbers.append(match)
        if numbers:
            return "I found these numbers: " + ", ".join(numbers[: self.max_numbers])
        return f"I found {len(candidates)} relevant sections."

    def _comparison(self, query: str, candidates: list[Candidate]) -> str:
        comparisons = [c.text for c in _containing(candidates, COMPARISON_CUES)[:2]]
        if comparisons:
            return "Here's the comparison:\n\n" + "\n\n".join(comparisons)
        return candidates[0].text

    def _informational(self, query: str, candidates: list[Candidate]) -> str:
        best = candidates[0]
        keywords = extract_keywords(query)
        for sentence in _sentences(best.text):
            lowered = sentence.lower()
            if any(keyword in lowered for keyword in keywords):
                return sentence
        return best.text


@dataclass
class SummarizingAnswerer:
    """Extractive bullet summary of a whole document."""
    max_points: int = 5
    max_chars: int = 800

    def summarize(self, document: Document) -> str:
        """Bullet the leading in-band sentences of the document."""
        sentences = split_sentences(document.content)[: self.max_points]
        if not sentences:
            text = document.content.strip()
            return self._truncate(text) if text else ""
        return self._truncate(_bullets(sentences))

    def _truncate(self, text: str) -> str:
        """Trim text to ``max_chars`` without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."
