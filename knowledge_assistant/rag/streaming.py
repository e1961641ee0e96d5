from __future__ import annotations

"""Streamed answer delivery with cooperative cancellation."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, TypeVar

from knowledge_assistant.metadata.store import DocumentRepository
from knowledge_assistant.rag.answerer import TemplateAnswerer
from knowledge_assistant.rag.guardrails import (
    check_query,
    require_answer,
    require_candidates,
    require_corpus,
)
from knowledge_assistant.rag.intents import classify_question
from knowledge_assistant.rag.retriever import HybridRetriever
from knowledge_assistant.rag.types import (
    Candidate,
    Document,
    Fragment,
    NeedsExternalSearch,
    QuestionIntent,
    StreamItem,
    TurnResult,
    TurnStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A phrase ends after clause punctuation followed by whitespace, or at a line break.
_PHRASE_RE = re.compile(r"\S.*?(?:[.!?;,](?=\s)|\n|\Z)\s*", re.DOTALL)


def split_fragments(answer: str) -> list[str]:
    """Split answer text into phrase fragments whose concatenation is the answer."""
    return _PHRASE_RE.findall(answer.strip())


@dataclass
class PreparedTurn:
    """Everything computed for a turn before the first fragment is emitted."""
    query: str
    answer: str = ""
    intent: QuestionIntent | None = None
    candidates: list[Candidate] = field(default_factory=list)
    reason: str | None = None
    cancelled: bool = False

    @property
    def has_answer(self) -> bool:
        return self.reason is None and not self.cancelled


@dataclass
class StreamingResponder:
    """Run retrieval, classification and synthesis, then stream fragments."""
    repository: DocumentRepository
    retriever: HybridRetriever
    answerer: TemplateAnswerer
    fragment_delay: float = 0.008
    corpus_timeout: float = 10.0

    async def stream(
        self,
        query: str,
        cancel: asyncio.Event | None = None,
        notifications: asyncio.Queue[NeedsExternalSearch] | None = None,
    ) -> AsyncIterator[StreamItem]:
        """Yield answer fragments, or a single ``NeedsExternalSearch`` marker."""
        turn = await self.prepare(query, cancel)
        async for item in self.emit(turn, cancel, notifications):
            yield item

    async def collect(
        self,
        query: str,
        cancel: asyncio.Event | None = None,
        notifications: asyncio.Queue[NeedsExternalSearch] | None = None,
    ) -> TurnResult:
        """Run a full turn and report how it ended."""
        turn = await self.prepare(query, cancel)
        fragments: list[str] = []
        async for item in self.emit(turn, cancel, notifications):
            if isinstance(item, Fragment):
                fragments.append(item.text)
        if turn.cancelled or (
            turn.has_answer and len(fragments) < len(split_fragments(turn.answer))
        ):
            status = TurnStatus.CANCELLED
        elif turn.reason is not None:
            status = TurnStatus.NO_LOCAL_DATA
        else:
            status = TurnStatus.ANSWERED
        return TurnResult(
            status=status,
            query=query,
            answer="".join(fragments) if status is TurnStatus.CANCELLED else turn.answer,
            intent=turn.intent,
            candidates=turn.candidates,
            fragments=fragments,
            reason=turn.reason,
        )

    async def prepare(self, query: str, cancel: asyncio.Event | None = None) -> PreparedTurn:
        """Compute the answer for a query; suspends only on corpus and embedding fetches."""
        turn = PreparedTurn(query=query)
        guard = check_query(query)
        if not guard.allowed:
            turn.reason = guard.reason
            return turn

        try:
            documents = await _unless_cancelled(self._fetch_corpus(), cancel)
            guard = require_corpus(documents)
            if not guard.allowed:
                turn.reason = guard.reason
                return turn
            turn.candidates = await _unless_cancelled(
                self.retriever.retrieve(query, documents), cancel
            )
        except _TurnCancelled:
            turn.cancelled = True
            return turn
        guard = require_candidates(turn.candidates)
        if not guard.allowed:
            turn.reason = guard.reason
            return turn

        try:
            turn.intent = classify_question(query)
            turn.answer = self.answerer.generate(query, turn.candidates, turn.intent)
        except Exception:
            logger.exception("answer_synthesis_failed", extra={"query_length": len(query)})
            turn.answer = ""
        guard = require_answer(turn.answer)
        if not guard.allowed:
            turn.reason = guard.reason
        return turn

    async def emit(
        self,
        turn: PreparedTurn,
        cancel: asyncio.Event | None = None,
        notifications: asyncio.Queue[NeedsExternalSearch] | None = None,
    ) -> AsyncIterator[StreamItem]:
        """Yield the prepared turn as stream items."""
        if turn.cancelled:
            logger.info("turn_cancelled", extra={"stage": "prepare"})
            return
        if turn.reason is not None:
            marker = NeedsExternalSearch(query=turn.query, reason=turn.reason)
            if notifications is not None:
                await notifications.put(marker)
            logger.info("no_local_data", extra={"reason": turn.reason})
            yield marker
            return

        fragments = split_fragments(turn.answer)
        emitted = 0
        for text in fragments:
            if _is_cancelled(cancel):
                break
            yield Fragment(text=text)
            emitted += 1
            await self._pause(cancel)
        logger.info(
            "turn_streamed",
            extra={
                "intent": turn.intent.value if turn.intent else None,
                "fragments": emitted,
                "total_fragments": len(fragments),
                "cancelled": emitted < len(fragments),
            },
        )

    async def _fetch_corpus(self) -> list[Document]:
        """Load every document; a timeout is treated as an empty corpus."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.repository.list_all), timeout=self.corpus_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("corpus_fetch_timeout", extra={"timeout": self.corpus_timeout})
            return []

    async def _pause(self, cancel: asyncio.Event | None) -> None:
        """Pace fragments, waking early when the turn is cancelled."""
        if self.fragment_delay <= 0:
            await asyncio.sleep(0)
            return
        if cancel is None:
            await asyncio.sleep(self.fragment_delay)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self.fragment_delay)
        except asyncio.TimeoutError:
            pass


def _is_cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class _TurnCancelled(Exception):
    pass


async def _unless_cancelled(work: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``work`` unless ``cancel`` fires first; the loser is cancelled."""
    if cancel is None:
        return await work
    task = asyncio.ensure_future(work)
    if cancel.is_set():
        task.cancel()
        raise _TurnCancelled()
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    if cancel.is_set() or task.cancelled():
        if task.done() and not task.cancelled():
            # Consume a late failure so it is not reported as unretrieved.
            task.exception()
        raise _TurnCancelled()
    return task.result()
