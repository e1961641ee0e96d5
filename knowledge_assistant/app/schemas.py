from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: str
    session_id: str | None = None
    include_follow_ups: bool = True
    save_history: bool = False


class CandidateOut(BaseModel):
    text: str
    score: float
    origin: str
    document_id: str
    document_title: str
    highlights: list[str] = Field(default_factory=list)


class QueryResponse(BaseModel):
    answer: str
    status: str
    intent: str | None = None
    needs_external_search: bool
    reason: str | None = None
    candidates: list[CandidateOut]
    follow_ups: list[str] = Field(default_factory=list)
    request_id: str


class FollowUpRequest(BaseModel):
    query: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    session_id: str | None = None


class FollowUpResponse(BaseModel):
    follow_ups: list[str]


class DocumentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    doc_id: str | None = None


class DocumentOut(BaseModel):
    doc_id: str
    title: str
    content: str
    summary: str | None = None
    created_at: datetime
    updated_at: datetime


class DocumentIngestResponse(BaseModel):
    document: DocumentOut
    chunk_count: int


class DeleteResponse(BaseModel):
    deleted: bool


class SummaryResponse(BaseModel):
    doc_id: str
    summary: str


class ChatMessageOut(BaseModel):
    content: str
    is_user: bool
    timestamp: datetime


class ChatHistoryResponse(BaseModel):
    messages: list[ChatMessageOut]


class ClearHistoryResponse(BaseModel):
    cleared: int


class StatsResponse(BaseModel):
    backend: str
    document_count: int
    chunk_count: int
    embedding_dimension: int | None = None
