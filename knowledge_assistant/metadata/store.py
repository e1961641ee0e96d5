from __future__ import annotations

"""Document and chat-history persistence."""

import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterator, Protocol

from knowledge_assistant.rag.types import ChatMessage, Document


class DocumentStoreError(RuntimeError):
    """Raised when document persistence fails."""
    pass


class DocumentNotFoundError(KeyError):
    """Raised when a document id is unknown."""
    pass


class DocumentRepository(Protocol):
    """Read side consumed by the answer pipeline."""

    def list_all(self) -> list[Document]:
        ...

    def get_by_id(self, doc_id: str) -> Document | None:
        ...


class DocumentStore(DocumentRepository, Protocol):
    """Full storage surface used by ingestion and the HTTP layer."""

    def add(self, title: str, content: str, doc_id: str | None = None) -> Document:
        ...

    def delete(self, doc_id: str) -> bool:
        ...

    def update_summary(self, doc_id: str, summary: str) -> Document:
        ...

    def save_message(self, message: ChatMessage) -> None:
        ...

    def get_messages(self, limit: int = 50) -> list[ChatMessage]:
        ...

    def clear_messages(self) -> int:
        ...


class InMemoryDocumentRepository:
    """Process-local document and chat storage."""
    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._messages: list[ChatMessage] = []
        self._lock = threading.Lock()

    def list_all(self) -> list[Document]:
        with self._lock:
            return list(self._documents.values())

    def get_by_id(self, doc_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(doc_id)

    def add(self, title: str, content: str, doc_id: str | None = None) -> Document:
        now = datetime.now(timezone.utc)
        document = Document(
            doc_id=doc_id or str(uuid.uuid4()),
            title=title,
            content=content,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            existing = self._documents.get(document.doc_id)
            if existing is not None:
                document = replace(document, created_at=existing.created_at)
            self._documents[document.doc_id] = document
        return document

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            return self._documents.pop(doc_id, None) is not None

    def update_summary(self, doc_id: str, summary: str) -> Document:
        with self._lock:
            document = self._documents.get(doc_id)
            if document is None:
                raise DocumentNotFoundError(doc_id)
            updated = replace(document, summary=summary)
            self._documents[doc_id] = updated
        return updated

    def save_message(self, message: ChatMessage) -> None:
        with self._lock:
            self._messages.append(message)

    def get_messages(self, limit: int = 50) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages[-limit:]) if limit > 0 else list(self._messages)

    def clear_messages(self) -> int:
        with self._lock:
            count = len(self._messages)
            self._messages.clear()
        return count



class SQLDocumentStore:
    """Store documents and chat messages in a SQL database."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the document store and ensure tables exist."""
        try:
            from sqlalchemy import (
                Boolean,
                Column,
                DateTime,
                Integer,
                MetaData,
                String,
                Table,
                Text,
                create_engine,
            )
            from sqlalchemy.exc import SQLAlchemyError
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise DocumentStoreError(
                "sqlalchemy is required to use the document store"
            ) from exc

        self._db_errors: tuple[type[Exception], ...] = (SQLAlchemyError,)
        self._metadata = MetaData()
        self._documents = Table(
            "documents",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("title", String(255), nullable=False),
            Column("content", Text, nullable=False),
            Column("summary", Text, nullable=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=False),
            Column("summarized_at", DateTime(timezone=True), nullable=True),
        )
        self._messages = Table(
            "chat_messages",
            self._metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("content", Text, nullable=False),
            Column("is_user", Boolean, nullable=False),
            Column("timestamp", DateTime(timezone=True), nullable=False),
        )
        with self._guard("create tables"):
            self._engine = create_engine(connection_uri)
            self._metadata.create_all(self._engine)

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except self._db_errors as exc:
            raise DocumentStoreError(f"Failed to {action}: {type(exc).__name__}") from exc

    def list_all(self) -> list[Document]:
        """Return every stored document, oldest first."""
        with self._guard("list documents"), self._engine.connect() as conn:
            rows = conn.execute(
                self._documents.select().order_by(self._documents.c.created_at)
            ).mappings().all()
        return [self._to_document(row) for row in rows]

    def get_by_id(self, doc_id: str) -> Document | None:
        with self._guard("load document"), self._engine.connect() as conn:
            row = conn.execute(
                self._documents.select().where(self._documents.c.id == doc_id)
            ).mappings().first()
        return self._to_document(row) if row else None

    def add(self, title: str, content: str, doc_id: str | None = None) -> Document:
        """Insert a document, replacing the content of an existing id."""
        now = datetime.now(timezone.utc)
        record_id = doc_id or str(uuid.uuid4())
        with self._guard("store document"), self._engine.begin() as conn:
            existing = conn.execute(
                self._documents.select().where(self._documents.c.id == record_id)
            ).mappings().first()
            if existing is None:
                conn.execute(
                    self._documents.insert().values(
                        id=record_id,
                        title=title,
                        content=content,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                conn.execute(
                    self._documents.update()
                    .where(self._documents.c.id == record_id)
                    .values(title=title, content=content, summary=None, updated_at=now)
                )
        document = self.get_by_id(record_id)
        if document is None:
            raise DocumentStoreError(f"Document {record_id} was not persisted")
        return document

    def delete(self, doc_id: str) -> bool:
        with self._guard("delete document"), self._engine.begin() as conn:
            result = conn.execute(
                self._documents.delete().where(self._documents.c.id == doc_id)
            )
        return result.rowcount > 0

    def update_summary(self, doc_id: str, summary: str) -> Document:
        """Cache a generated summary on the document."""
        with self._guard("store summary"), self._engine.begin() as conn:
            result = conn.execute(
                self._documents.update()
                .where(self._documents.c.id == doc_id)
                .values(summary=summary, summarized_at=datetime.now(timezone.utc))
            )
        if result.rowcount == 0:
            raise DocumentNotFoundError(doc_id)
        document = self.get_by_id(doc_id)
        if document is None:
            raise DocumentNotFoundError(doc_id)
        return document

    def save_message(self, message: ChatMessage) -> None:
        with self._guard("save chat message"), self._engine.begin() as conn:
            conn.execute(
                self._messages.insert().values(
                    content=message.content,
                    is_user=message.is_user,
                    timestamp=message.timestamp,
                )
            )

    def get_messages(self, limit: int = 50) -> list[ChatMessage]:
        """Return the most recent messages in chronological order."""
        query = self._messages.select().order_by(self._messages.c.id.desc())
        if limit > 0:
            query = query.limit(limit)
        with self._guard("load chat history"), self._engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            ChatMessage(content=row["content"], is_user=bool(row["is_user"]), timestamp=row["timestamp"])
            for row in reversed(rows)
        ]

    def clear_messages(self) -> int:
        with self._guard("clear chat history"), self._engine.begin() as conn:
            result = conn.execute(self._messages.delete())
        return result.rowcount

    @staticmethod
    def _to_document(row: Any) -> Document:
        return Document(
            doc_id=row["id"],
            title=row["title"],
            content=row["content"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            summary=row["summary"],
        )
