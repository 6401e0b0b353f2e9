"""Persistence scheduler: promotes session turns to the durable store.

Triggered on chat boundaries (chat switch, sign-out, explicit save). Each
turn becomes two records (user and assistant) with deterministic ids, so
re-running persistence overwrites instead of duplicating. All records of
one run are embedded with a single batched embedding request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from chatmem.errors import CollaboratorError
from chatmem.lib.async_utils import with_timeout
from chatmem.llm.summarization import (
    conversation_text,
    extract_key_topics,
    keyword_topics,
    summarize_session,
)
from chatmem.models import (
    ChatSession,
    ConversationTurn,
    LongTermMemoryRecord,
    PersistResult,
    SessionSummary,
    _utcnow,
)

if TYPE_CHECKING:
    from chatmem.config import ChatMemConfig
    from chatmem.embedding import AsyncEmbeddingClient
    from chatmem.llm.client import CompletionClient
    from chatmem.memory.session_store import SessionStore
    from chatmem.vectorstore import VectorStore

logger = logging.getLogger(__name__)


def build_turn_records(session: ChatSession, turns: list[ConversationTurn]) -> list[LongTermMemoryRecord]:
    """Two records per turn, skipping sides with no text."""
    first_turn_id = session.turns[0].turn_id if session.turns else None
    records = []
    for turn in turns:
        extra = {
            "source": "chat-message",
            "session_id": session.session_id,
            "is_first_message": turn.turn_id == first_turn_id,
        }
        if turn.attachment:
            extra["attachment_url"] = turn.attachment.url
            if turn.attachment.prompt:
                extra["attachment_prompt"] = turn.attachment.prompt

        for role, content in (("user", turn.user_prompt), ("assistant", turn.ai_response)):
            if not content or not content.strip():
                continue
            records.append(
                LongTermMemoryRecord(
                    id=LongTermMemoryRecord.message_id(session.user_id, session.chat_id, turn.turn_id, role),
                    content=content,
                    user_id=session.user_id,
                    chat_id=session.chat_id,
                    role=role,
                    timestamp=turn.timestamp,
                    turn_id=turn.turn_id,
                    tags=[f"{role}-message", session.chat_id],
                    extra=extra,
                )
            )
    return records


class PersistenceScheduler:
    """Uploads chat sessions to the vector store with a per-chat cooldown."""

    def __init__(
        self,
        session_store: SessionStore,
        vector_store: VectorStore,
        embedder: AsyncEmbeddingClient,
        config: ChatMemConfig,
        llm: CompletionClient | None = None,
    ):
        self.sessions = session_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.config = config
        self.llm = llm
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def lock_for(self, user_id: str, chat_id: str) -> asyncio.Lock:
        return self._locks.setdefault((user_id, chat_id), asyncio.Lock())

    def release_lock(self, user_id: str, chat_id: str) -> bool:
        """Forget a chat's lock once its session is gone, unless a run holds it.

        A task still queued on the old lock finds no session and returns
        "missing", so dropping the entry is safe after eviction or erasure.
        """
        lock = self._locks.get((user_id, chat_id))
        if lock is None or lock.locked():
            return False
        del self._locks[(user_id, chat_id)]
        return True

    def release_user_locks(self, user_id: str) -> int:
        return sum(self.release_lock(u, c) for u, c in list(self._locks) if u == user_id)

    async def on_chat_boundary(
        self,
        user_id: str,
        chat_id: str,
        force: bool = False,
        ignore_cooldown: bool = False,
    ) -> PersistResult:
        """Persist a chat's session.

        The cooldown check, the upload and the cooldown timestamp update run
        under one per-chat lock, so a forced save and a boundary event for
        the same chat never interleave.

        Args:
            force: Skip the cooldown and re-upload every turn
            ignore_cooldown: Skip the cooldown but upload only new turns
        """
        async with self.lock_for(user_id, chat_id):
            return await self._persist(user_id, chat_id, force, ignore_cooldown or force)

    async def _persist(self, user_id: str, chat_id: str, force: bool, ignore_cooldown: bool) -> PersistResult:
        session = self.sessions.get(user_id, chat_id)
        if session is None:
            return PersistResult(user_id=user_id, chat_id=chat_id, status="missing")
        if not session.turns:
            return PersistResult(user_id=user_id, chat_id=chat_id, status="empty")

        now = _utcnow()
        cooldown = timedelta(seconds=self.config.persist_cooldown_seconds)
        if not ignore_cooldown and session.last_upload_at and now - session.last_upload_at < cooldown:
            logger.debug(f"[PERSIST] Chat {chat_id} uploaded {now - session.last_upload_at} ago, in cooldown")
            return PersistResult(user_id=user_id, chat_id=chat_id, status="cooldown")

        turns = list(session.turns) if force else session.unpersisted_turns()
        if not turns:
            return PersistResult(user_id=user_id, chat_id=chat_id, status="up_to_date")

        records = build_turn_records(session, turns)
        summary = None
        if self.config.persist_session_summary:
            summary = await self._summarize(session)
            if summary is not None:
                records.append(self._summary_record(summary))

        try:
            embeddings = await with_timeout(
                self.embedder.embed_batch([r.content for r in records], batch_size=self.config.vector_batch_size),
                self.config.collaborator_timeout_seconds,
                "embedding",
            )
            for record, embedding in zip(records, embeddings, strict=True):
                record.embedding = embedding

            upserted = 0
            batch_size = max(1, self.config.vector_batch_size)
            for i in range(0, len(records), batch_size):
                upserted += await with_timeout(
                    self.vector_store.upsert(records[i : i + batch_size]),
                    self.config.collaborator_timeout_seconds,
                    "vector_store",
                )
        except (CollaboratorError, ValueError) as e:
            logger.error(f"[PERSIST] Failed to persist chat {chat_id} for user {user_id}: {e}")
            return PersistResult(user_id=user_id, chat_id=chat_id, status="failed", error=str(e))

        if summary is not None:
            self.sessions.set_summary(user_id, chat_id, summary)
        self.sessions.mark_persisted(user_id, chat_id, [t.turn_id for t in turns], now)

        logger.info(
            f"[PERSIST] Uploaded {upserted} records for chat {chat_id} "
            f"({len(turns)} turns{', forced' if force else ''})"
        )
        return PersistResult(user_id=user_id, chat_id=chat_id, status="persisted", records_upserted=upserted)

    async def _summarize(self, session: ChatSession) -> SessionSummary | None:
        """Best-effort session summary. Failures only drop the summary record."""
        if self.llm is None:
            return None
        turns = list(session.turns)
        try:
            text = await with_timeout(
                summarize_session(self.llm, turns, model=self.config.llm_model),
                self.config.collaborator_timeout_seconds,
                "llm",
            )
        except CollaboratorError as e:
            logger.warning(f"[PERSIST] Summary failed for chat {session.chat_id}: {e}")
            return None
        if not text:
            return None

        try:
            topics = await with_timeout(
                extract_key_topics(self.llm, conversation_text(turns)),
                self.config.collaborator_timeout_seconds,
                "llm",
            )
        except CollaboratorError:
            topics = keyword_topics(conversation_text(turns))

        return SessionSummary(
            session_id=session.session_id,
            user_id=session.user_id,
            chat_id=session.chat_id,
            summary=text,
            key_topics=topics,
            turn_count=len(turns),
            timespan_start=turns[0].timestamp,
            timespan_end=turns[-1].timestamp,
        )

    @staticmethod
    def _summary_record(summary: SessionSummary) -> LongTermMemoryRecord:
        return LongTermMemoryRecord(
            id=LongTermMemoryRecord.summary_id(summary.user_id, summary.chat_id),
            content=summary.summary,
            user_id=summary.user_id,
            chat_id=summary.chat_id,
            role="summary",
            timestamp=summary.timespan_end,
            tags=["session-summary", *summary.key_topics],
            extra={
                "source": "session-summary",
                "session_id": summary.session_id,
                "turn_count": summary.turn_count,
                "key_topics": summary.key_topics,
            },
        )
