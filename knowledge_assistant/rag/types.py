from __future__ import annotations

"""Core data types for documents, chunks and answer turns."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    """Stored document; the answer pipeline only reads id, title and content."""
    doc_id: str
    title: str
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    summary: str | None = None


@dataclass(frozen=True)
class Chunk:
    """Embedded slice of a document."""
    document_id: str
    index: int
    text: str
    embedding: tuple[float, ...]


@dataclass(frozen=True)
class SearchResult:
    """Index hit with cosine similarity score."""
    chunk: Chunk
    score: float


class CandidateOrigin(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class Candidate:
    """Passage selected for answering a single query."""
    text: str
    score: float
    origin: CandidateOrigin
    document_id: str
    document_title: str = ""


class QuestionIntent(str, Enum):
    SUMMARY = "summary"
    LIST = "list"
    DEFINITION = "definition"
    HOW_TO = "how_to"
    REASON = "reason"
    YES_NO = "yes_no"
    COUNT = "count"
    COMPARISON = "comparison"
    INFORMATIONAL = "informational"


@dataclass(frozen=True)
class FollowUpQuestion:
    text: str


@dataclass(frozen=True)
class Fragment:
    """Piece of answer text emitted during streaming."""
    text: str


@dataclass(frozen=True)
class NeedsExternalSearch:
    """Terminal stream item: nothing local answers the query."""
    query: str
    reason: str


StreamItem = Union[Fragment, NeedsExternalSearch]


class TurnStatus(str, Enum):
    ANSWERED = "answered"
    NO_LOCAL_DATA = "no_local_data"
    CANCELLED = "cancelled"


@dataclass
class TurnResult:
    """Collected outcome of one query turn."""
    status: TurnStatus
    query: str
    answer: str = ""
    intent: QuestionIntent | None = None
    candidates: list[Candidate] = field(default_factory=list)
    fragments: list[str] = field(default_factory=list)
    reason: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    content: str
    is_user: bool
    timestamp: datetime = field(default_factory=_utcnow)
