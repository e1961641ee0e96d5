from __future__ import annotations

"""Deterministic follow-up question suggestions from a question/answer pair."""

import hashlib
import random
import re
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass

from knowledge_assistant.rag.types import FollowUpQuestion

MAX_FOLLOW_UPS = 3

TOPIC_STOP_WORDS = frozenset(
    {
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should", "may",
        "might", "shall", "can", "i", "you", "he", "she", "it", "we", "they", "me",
        "him", "her", "us", "them", "what", "which", "who", "whom", "whose", "when",
        "where", "why", "how", "that", "this", "these", "those", "and", "but", "or",
        "nor", "for", "yet", "so", "in", "on", "at", "by", "with", "from", "to", "of",
        "about", "as", "into", "through", "during", "before", "after", "above",
        "below", "between", "under", "all", "each", "if", "then", "than", "because",
        "while", "although", "though", "until", "unless", "not", "no", "never",
        "always", "just", "very", "also", "too", "more", "most", "your", "my", "our",
        "their", "its", "some", "any", "both", "few", "many", "much", "other", "same",
        "such", "even", "only", "own", "rather", "quite", "per", "via", "based",
        "documents", "found",
    }
)

EXPLAIN_TEMPLATES = (
    "Can you explain {0} in more detail?",
    "What does {0} mean exactly?",
    "How does {0} work?",
    "Why is {0} important?",
    "What are examples of {0}?",
)

COMPARE_TEMPLATES = (
    "What is the difference between {0} and {1}?",
    "How does {0} compare to {1}?",
    "Can you compare {0} and {1}?",
)

GENERAL_TEMPLATES = (
    "Can you summarize the key points?",
    "What are the main benefits of this?",
    "How can I apply this in practice?",
    "What should I know next about this topic?",
    "Are there any limitations or drawbacks?",
    "Can you give a real-world example?",
    "What are common mistakes to avoid?",
    "How does this relate to everyday life?",
)

_WORD_SPLIT_RE = re.compile(r"\W+")
_PROPER_PHRASE_RE = re.compile(r"\b([A-Z][a-z]{2,}(?:\s+[A-Z][a-z]{2,})*)\b")
_WHAT_IS_RE = re.compile(r"^what\s+is\s+(.+)$")
_HOW_DOES_RE = re.compile(r"^how\s+does\s+(.+)\s+work")
_TELL_ME_RE = re.compile(r"^(?:tell me about|explain|describe)\s+(.+)$")


def stable_hash(text: str) -> int:
    """Process-independent integer hash of a string."""
    return int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")


def extract_key_topics(text: str, max_topics: int = 5) -> list[str]:
    """Rank frequent content words, boosting capitalized phrases."""
    if not text.strip():
        return []
    frequency: dict[str, int] = {}
    for word in _WORD_SPLIT_RE.split(text.lower()):
        if len(word) >= 4 and word not in TOPIC_STOP_WORDS:
            frequency[word] = frequency.get(word, 0) + 1
    for match in _PROPER_PHRASE_RE.findall(text):
        phrase = match.lower()
        if phrase in TOPIC_STOP_WORDS:
            continue
        frequency[phrase] = frequency.get(phrase, 0) + 2
    ranked = sorted(frequency.items(), key=lambda item: item[1], reverse=True)
    return [topic for topic, _ in ranked[:max_topics]]


def morph_question(query: str, topics: list[str]) -> str:
    """Rephrase the original question into a related one."""
    lowered = query.lower().strip("?.! ")
    match = _WHAT_IS_RE.match(lowered)
    if match:
        return f"What are the benefits of {match.group(1)}?"
    match = _HOW_DOES_RE.match(lowered)
    if match:
        return f"What are the limitations of {match.group(1)}?"
    match = _TELL_ME_RE.match(lowered)
    if match:
        return f"Can you give examples of {match.group(1)}?"
    if topics:
        return f"What are the practical applications of {_capitalize(topics[0])}?"
    return ""


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _pick_template(templates: tuple[str, ...], *args: str) -> str:
    template = templates[stable_hash("".join(args)) % len(templates)]
    return template.format(*args)


class RecentQuestions:
    """Bounded per-session memory of suggested follow-ups.

    Sessions are evicted least-recently-used once ``max_sessions`` is reached,
    and each session keeps only its last ``max_per_session`` questions.
    """

    def __init__(self, max_sessions: int = 128, max_per_session: int = 30) -> None:
        self.max_sessions = max_sessions
        self.max_per_session = max_per_session
        self._sessions: OrderedDict[str, deque[str]] = OrderedDict()
        self._lock = threading.Lock()

    def seen(self, session_id: str) -> set[str]:
        with self._lock:
            history = self._sessions.get(session_id)
            if history is None:
                return set()
            self._sessions.move_to_end(session_id)
            return {question.lower() for question in history}

    def record(self, session_id: str, questions: list[str]) -> None:
        with self._lock:
            history = self._sessions.get(session_id)
            if history is None:
                history = deque(maxlen=self.max_per_session)
                self._sessions[session_id] = history
            self._sessions.move_to_end(session_id)
            history.extend(questions)
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


@dataclass
class FollowUpGenerator:
    """Suggest up to three follow-up questions for an answered query."""
    recent: RecentQuestions | None = None
    max_topics: int = 5

    def generate(
        self, query: str, answer: str, session_id: str | None = None
    ) -> list[FollowUpQuestion]:
        """Return follow-ups; identical input without a session gives identical output."""
        excluded: set[str] = set()
        if session_id is not None and self.recent is not None:
            excluded = self.recent.seen(session_id)
        used: set[str] = set()
        questions: list[str] = []

        def offer(question: str) -> None:
            key = question.lower()
            if not question or key in used or key in excluded:
                return
            if len(questions) >= MAX_FOLLOW_UPS:
                return
            used.add(key)
            questions.append(question)

        topics = extract_key_topics(answer, max_topics=self.max_topics)
        if topics:
            offer(_pick_template(EXPLAIN_TEMPLATES, _capitalize(topics[0])))
        if len(topics) >= 2:
            offer(
                _pick_template(COMPARE_TEMPLATES, _capitalize(topics[0]), _capitalize(topics[1]))
            )
        offer(morph_question(query, topics))

        rng = random.Random(stable_hash(query))
        for question in rng.sample(GENERAL_TEMPLATES, len(GENERAL_TEMPLATES)):
            if len(questions) >= MAX_FOLLOW_UPS:
                break
            offer(question)

        if session_id is not None and self.recent is not None and questions:
            self.recent.record(session_id, questions)
        return [FollowUpQuestion(text=question) for question in questions]
