from __future__ import annotations

"""FastAPI application entrypoint for the offline knowledge assistant."""

import asyncio
import hashlib
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from knowledge_assistant.app.dependencies import get_pipeline
from knowledge_assistant.app.metrics import metrics_middleware, metrics_response, record_turn
from knowledge_assistant.app.schemas import (
    CandidateOut,
    ChatHistoryResponse,
    ChatMessageOut,
    ClearHistoryResponse,
    DeleteResponse,
    DocumentCreate,
    DocumentIngestResponse,
    DocumentOut,
    FollowUpRequest,
    FollowUpResponse,
    QueryRequest,
    QueryResponse,
    StatsResponse,
    SummaryResponse,
)
from knowledge_assistant.app.settings import settings
from knowledge_assistant.metadata.store import DocumentNotFoundError, DocumentStoreError
from knowledge_assistant.rag.embeddings import EmbeddingConfigError, EmbeddingError
from knowledge_assistant.rag.highlights import build_highlights
from knowledge_assistant.rag.types import (
    ChatMessage,
    Document,
    Fragment,
    NeedsExternalSearch,
    TurnStatus,
)

logger = logging.getLogger(__name__)

# Turn outcome for streams cut short by a storage failure.
TURN_FAILED = "error"


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Rebuild the in-memory index from persisted documents."""
    if settings.document_db_uri:
        indexed = await get_pipeline().reindex_all()
        logger.info("startup_reindex", extra={"chunks": indexed})
    yield


app = FastAPI(title="Offline Knowledge Assistant", version="0.1.0", lifespan=lifespan)


def _safe_error_message(exc: Exception) -> str:
    """Return a safe error type name for logs and responses."""
    return type(exc).__name__


def _query_hash(query: str) -> str:
    return hashlib.sha256(query.encode("utf-8")).hexdigest()


def _document_out(document: Document) -> DocumentOut:
    return DocumentOut(
        doc_id=document.doc_id,
        title=document.title,
        content=document.content,
        summary=document.summary,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


def _storage_unavailable(exc: Exception, request_id: str) -> HTTPException:
    logger.error(
        "storage_failed",
        extra={"request_id": request_id, "detail": _safe_error_message(exc)},
    )
    return HTTPException(status_code=503, detail="Document storage is unavailable")


def _sse(event: str, payload: dict[str, object]) -> str:
    return f"event: {event}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse)
async def stats() -> StatsResponse:
    """Return embedding index stats."""
    pipeline = get_pipeline()
    return StatsResponse(**pipeline.indexer.index.stats())


@app.post("/documents", response_model=DocumentIngestResponse)
async def create_document(
    request: DocumentCreate, http_request: Request
) -> DocumentIngestResponse:
    """Store a note and index its chunks; an existing doc_id is replaced."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    pipeline = get_pipeline()
    try:
        document = await pipeline.add_document(request.title, request.content, request.doc_id)
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, request_id) from exc
    except (EmbeddingError, EmbeddingConfigError) as exc:
        logger.error(
            "document_ingest_failed",
            extra={"request_id": request_id, "detail": _safe_error_message(exc)},
        )
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    chunk_count = len(pipeline.indexer.index.chunks_for(document.doc_id))
    logger.info(
        "document_ingested",
        extra={
            "request_id": request_id,
            "document_id": document.doc_id,
            "content_length": len(document.content),
            "chunk_count": chunk_count,
        },
    )
    return DocumentIngestResponse(document=_document_out(document), chunk_count=chunk_count)


@app.get("/documents", response_model=list[DocumentOut])
async def list_documents(http_request: Request) -> list[DocumentOut]:
    pipeline = get_pipeline()
    try:
        documents = await asyncio.to_thread(pipeline.repository.list_all)
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    return [_document_out(document) for document in documents]


@app.get("/documents/{doc_id}", response_model=DocumentOut)
async def get_document(doc_id: str, http_request: Request) -> DocumentOut:
    pipeline = get_pipeline()
    try:
        document = await asyncio.to_thread(pipeline.repository.get_by_id, doc_id)
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _document_out(document)


@app.delete("/documents/{doc_id}", response_model=DeleteResponse)
async def delete_document(doc_id: str, http_request: Request) -> DeleteResponse:
    """Remove a document and its chunks; unknown ids report deleted=false."""
    pipeline = get_pipeline()
    try:
        deleted = await pipeline.delete_document(doc_id)
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    logger.info(
        "document_deleted",
        extra={"request_id": http_request.state.request_id, "document_id": doc_id, "deleted": deleted},
    )
    return DeleteResponse(deleted=deleted)


@app.post("/documents/{doc_id}/summary", response_model=SummaryResponse)
async def summarize_document(doc_id: str, http_request: Request) -> SummaryResponse:
    pipeline = get_pipeline()
    try:
        summary = await pipeline.summarize_document(doc_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    return SummaryResponse(doc_id=doc_id, summary=summary)


@app.post("/query", response_model=QueryResponse)
async def query(request: QueryRequest, http_request: Request) -> QueryResponse:
    """Answer a query from local documents in a single response."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    logger.info(
        "query_received",
        extra={
            "request_id": request_id,
            "query_length": len(request.query),
            "query_hash": _query_hash(request.query),
            "session_id": request.session_id,
        },
    )
    pipeline = get_pipeline()
    try:
        result = await pipeline.answer(request.query)
    except DocumentStoreError as exc:
        record_turn(TURN_FAILED)
        raise _storage_unavailable(exc, request_id) from exc
    record_turn(result.status.value, len(result.fragments))

    follow_ups: list[str] = []
    if result.status is TurnStatus.ANSWERED and request.include_follow_ups:
        follow_ups = [
            question.text
            for question in pipeline.suggest_follow_ups(
                request.query, result.answer, session_id=request.session_id
            )
        ]
    if request.save_history and request.query.strip():
        try:
            await asyncio.to_thread(
                pipeline.repository.save_message, ChatMessage(content=request.query, is_user=True)
            )
            if result.answer:
                await asyncio.to_thread(
                    pipeline.repository.save_message,
                    ChatMessage(content=result.answer, is_user=False),
                )
        except DocumentStoreError as exc:
            raise _storage_unavailable(exc, request_id) from exc

    logger.info(
        "query_completed",
        extra={
            "request_id": request_id,
            "status": result.status.value,
            "intent": result.intent.value if result.intent else None,
            "reason": result.reason,
            "answer_length": len(result.answer),
            "candidates": len(result.candidates),
        },
    )
    return QueryResponse(
        answer=result.answer,
        status=result.status.value,
        intent=result.intent.value if result.intent else None,
        needs_external_search=result.status is TurnStatus.NO_LOCAL_DATA,
        reason=result.reason,
        candidates=[
            CandidateOut(
                text=candidate.text,
                score=candidate.score,
                origin=candidate.origin.value,
                document_id=candidate.document_id,
                document_title=candidate.document_title,
                highlights=build_highlights(candidate.text, request.query),
            )
            for candidate in result.candidates
        ],
        follow_ups=follow_ups,
        request_id=request_id,
    )


@app.post("/query/stream")
async def query_stream(request: QueryRequest, http_request: Request) -> StreamingResponse:
    """Stream answer fragments as server-sent events."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    pipeline = get_pipeline()
    cancel = asyncio.Event()

    async def event_generator() -> AsyncIterator[str]:
        fragments = 0
        outcome = TurnStatus.ANSWERED.value
        try:
            async for item in pipeline.responder.stream(request.query, cancel):
                if isinstance(item, NeedsExternalSearch):
                    outcome = TurnStatus.NO_LOCAL_DATA.value
                    yield _sse(
                        "needs_external_search",
                        {"query": item.query, "reason": item.reason},
                    )
                elif isinstance(item, Fragment):
                    fragments += 1
                    yield _sse("fragment", {"text": item.text})
        except asyncio.CancelledError:
            # The server cancels the response task when the client goes away.
            cancel.set()
            outcome = TurnStatus.CANCELLED.value
            raise
        except DocumentStoreError as exc:
            outcome = TURN_FAILED
            logger.error(
                "stream_failed",
                extra={"request_id": request_id, "detail": _safe_error_message(exc)},
            )
            yield _sse("error", {"detail": "Document storage is unavailable"})
            return
        finally:
            record_turn(outcome, fragments)
            logger.info(
                "stream_completed",
                extra={"request_id": request_id, "status": outcome, "fragments": fragments},
            )
        yield _sse("done", {"status": outcome, "request_id": request_id})

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Request-ID": request_id},
    )


@app.post("/followups", response_model=FollowUpResponse)
async def follow_ups(request: FollowUpRequest) -> FollowUpResponse:
    pipeline = get_pipeline()
    questions = pipeline.suggest_follow_ups(
        request.query, request.answer, session_id=request.session_id
    )
    return FollowUpResponse(follow_ups=[question.text for question in questions])


@app.get("/chat/history", response_model=ChatHistoryResponse)
async def chat_history(http_request: Request, limit: int | None = None) -> ChatHistoryResponse:
    pipeline = get_pipeline()
    try:
        messages = await asyncio.to_thread(
            pipeline.repository.get_messages, limit or settings.chat_history_limit
        )
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    return ChatHistoryResponse(
        messages=[
            ChatMessageOut(content=message.content, is_user=message.is_user, timestamp=message.timestamp)
            for message in messages
        ]
    )


@app.delete("/chat/history", response_model=ClearHistoryResponse)
async def clear_chat_history(http_request: Request) -> ClearHistoryResponse:
    pipeline = get_pipeline()
    try:
        cleared = await asyncio.to_thread(pipeline.repository.clear_messages)
    except DocumentStoreError as exc:
        raise _storage_unavailable(exc, http_request.state.request_id) from exc
    return ClearHistoryResponse(cleared=cleared)
