"""Ephemeral per-chat session store.

Holds the ordered turns (and local summaries) of every live chat, keyed by
(user_id, chat_id). Purely in memory; sessions are evicted after an
inactivity window by the periodic sweep.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import uuid4

from chatmem.models import Attachment, ChatSession, ConversationTurn, SessionSummary, _utcnow
from chatmem.memory.storage import InMemoryStoragePort, StoragePort

logger = logging.getLogger(__name__)

_ONE_TICK = timedelta(microseconds=1)


class SessionStore:
    """Session tier of the hybrid memory.

    Invariants:
    - exactly one live ChatSession per (user_id, chat_id)
    - turns within a session are append-only with strictly increasing timestamps
    - is_persisted is cleared whenever a new turn arrives
    """

    def __init__(self, storage: StoragePort | None = None):
        self._storage = storage if storage is not None else InMemoryStoragePort()

    # =========================================================================
    # Writes
    # =========================================================================

    def append(
        self,
        user_id: str,
        chat_id: str,
        turn: ConversationTurn,
        attachment: Attachment | None = None,
    ) -> ChatSession:
        """Append a turn, creating the session on the first turn for the key."""
        if turn.user_id != user_id or turn.chat_id != chat_id:
            raise ValueError(
                f"Turn {turn.turn_id} belongs to ({turn.user_id}, {turn.chat_id}), "
                f"not ({user_id}, {chat_id})"
            )

        updates: dict = {}
        if attachment is not None and turn.attachment is None:
            updates["attachment"] = attachment

        key = (user_id, chat_id)
        session = self._storage.get(key)
        if session is None:
            session = ChatSession(
                session_id=f"session_{uuid4().hex[:12]}",
                user_id=user_id,
                chat_id=chat_id,
            )
            logger.debug(f"[SESSION] Created session {session.session_id} (chat: {chat_id})")

        if session.turns and turn.timestamp <= session.turns[-1].timestamp:
            updates["timestamp"] = session.turns[-1].timestamp + _ONE_TICK
        if updates:
            turn = turn.model_copy(update=updates)

        session.turns.append(turn)
        session.last_activity = max(_utcnow(), turn.timestamp)
        session.is_persisted = False
        session.pending_persist = False
        self._storage.put(key, session)

        logger.debug(
            f"[SESSION] Stored turn {len(session.turns)} in chat {chat_id}: "
            f"\"{turn.user_prompt[:50]}\""
        )
        return session

    def set_summary(self, user_id: str, chat_id: str, summary: SessionSummary) -> None:
        """Store the chat's summary, replacing any earlier one."""
        session = self._storage.get((user_id, chat_id))
        if session is None:
            return
        session.summary = summary
        self._storage.put((user_id, chat_id), session)

    def mark_persisted(
        self,
        user_id: str,
        chat_id: str,
        turn_ids: list[str],
        uploaded_at: datetime,
    ) -> ChatSession | None:
        """Record a successful upload of turn_ids at uploaded_at."""
        session = self._storage.get((user_id, chat_id))
        if session is None:
            return None
        session.persisted_turn_ids.update(turn_ids)
        session.last_upload_at = uploaded_at
        session.is_persisted = not session.unpersisted_turns()
        if session.is_persisted:
            session.pending_persist = False
        self._storage.put((user_id, chat_id), session)
        return session

    def delete(self, user_id: str, chat_id: str) -> bool:
        return self._storage.delete((user_id, chat_id))

    def delete_user(self, user_id: str) -> int:
        removed = 0
        for session in self.sessions_for_user(user_id):
            removed += self._storage.delete(session.key)
        return removed

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, user_id: str, chat_id: str) -> ChatSession | None:
        return self._storage.get((user_id, chat_id))

    def all_sessions(self) -> list[ChatSession]:
        return [session for _, session in self._storage.items()]

    def sessions_for_user(self, user_id: str) -> list[ChatSession]:
        return [s for s in self.all_sessions() if s.user_id == user_id]

    def recent(
        self,
        user_id: str,
        chat_id: str | None = None,
        limit: int = 10,
    ) -> list[ConversationTurn]:
        """Most recent turns, oldest first.

        With chat_id the result is scoped to that chat; without it, turns from
        all of the user's chats are merged by timestamp.
        """
        if limit <= 0:
            return []
        if chat_id is not None:
            session = self.get(user_id, chat_id)
            return list(session.turns[-limit:]) if session else []

        turns = [t for s in self.sessions_for_user(user_id) for t in s.turns]
        turns.sort(key=lambda t: t.timestamp)
        return turns[-limit:]

    def summaries(self, user_id: str, chat_id: str | None = None) -> list[SessionSummary]:
        """Local session summaries, newest first."""
        sessions = self.sessions_for_user(user_id)
        if chat_id is not None:
            sessions = [s for s in sessions if s.chat_id == chat_id]
        found = [s.summary for s in sessions if s.summary is not None]
        return sorted(found, key=lambda s: s.created_at, reverse=True)

    def pending_sessions(self) -> list[ChatSession]:
        """Sessions flagged by eviction as still holding unpersisted turns."""
        return [s for s in self.all_sessions() if s.pending_persist]

    # =========================================================================
    # Eviction
    # =========================================================================

    def evict_stale(
        self,
        max_age: timedelta,
        hard_max_age: timedelta | None = None,
        now: datetime | None = None,
    ) -> list[ChatSession]:
        """Evict sessions inactive for longer than max_age.

        Sessions that still hold unpersisted turns are not removed; they are
        flagged pending_persist so the caller can try to persist them first.
        Past hard_max_age they are dropped regardless.

        Returns:
            The evicted sessions
        """
        now = now or _utcnow()
        evicted: list[ChatSession] = []

        for session in self.all_sessions():
            idle = now - session.last_activity
            if idle <= max_age:
                continue

            if session.unpersisted_turns():
                if hard_max_age is None or idle <= hard_max_age:
                    if not session.pending_persist:
                        session.pending_persist = True
                        self._storage.put(session.key, session)
                        logger.info(
                            f"[SESSION] Session for chat {session.chat_id} is stale with "
                            f"{len(session.unpersisted_turns())} unpersisted turns, flagged for persistence"
                        )
                    continue
                logger.warning(
                    f"[SESSION] Dropping chat {session.chat_id} after {idle}: "
                    f"{len(session.unpersisted_turns())} turns were never persisted"
                )

            self._storage.delete(session.key)
            evicted.append(session)

        if evicted:
            logger.info(f"[SESSION] Evicted {len(evicted)} stale sessions")
        return evicted

    def stats(self, user_id: str | None = None) -> dict:
        sessions = self.sessions_for_user(user_id) if user_id else self.all_sessions()
        return {
            "sessions": len(sessions),
            "turns": sum(len(s.turns) for s in sessions),
            "summaries": sum(1 for s in sessions if s.summary is not None),
            "unpersisted_sessions": sum(1 for s in sessions if not s.is_persisted),
            "pending_persist": sum(1 for s in sessions if s.pending_persist),
        }
