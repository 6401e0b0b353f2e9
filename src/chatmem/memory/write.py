"""Write operations for HybridMemory.

Everything here runs off the request path: record_turn() and end_chat()
only validate their arguments and schedule background tasks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from chatmem.errors import require_identity
from chatmem.memory.formatting import render_turns
from chatmem.models import Attachment, ConversationTurn, PersistResult

if TYPE_CHECKING:
    from chatmem.memory.core import HybridMemory

logger = logging.getLogger(__name__)


def _as_attachment(attachment: Attachment | dict[str, Any] | None) -> Attachment | None:
    if attachment is None or isinstance(attachment, Attachment):
        return attachment
    return Attachment.model_validate(attachment)


class WriteMixin:
    """Mixin class providing the write path of HybridMemory."""

    def record_turn(
        self: "HybridMemory",
        user_id: str,
        chat_id: str,
        user_prompt: str,
        ai_response: str,
        attachment: Attachment | dict[str, Any] | None = None,
    ) -> asyncio.Task:
        """Schedule storing a completed turn. Must be called inside the event loop.

        The append happens in a background task, so it is not visible to a
        read in the same tick.

        Raises:
            MissingIdentityError: If user_id or chat_id is empty
        """
        require_identity(user_id, chat_id, need_chat=True)
        return self._tasks.spawn(
            self.record_turn_async(user_id, chat_id, user_prompt, ai_response, attachment),
            label=f"record:{chat_id}",
        )

    async def record_turn_async(
        self: "HybridMemory",
        user_id: str,
        chat_id: str,
        user_prompt: str,
        ai_response: str,
        attachment: Attachment | dict[str, Any] | None = None,
    ) -> ConversationTurn:
        """Append a turn to its session and run the follow-up bookkeeping."""
        require_identity(user_id, chat_id, need_chat=True)

        turn = ConversationTurn(
            user_id=user_id,
            chat_id=chat_id,
            user_prompt=user_prompt,
            ai_response=ai_response,
            attachment=_as_attachment(attachment),
        )
        session = self.sessions.append(user_id, chat_id, turn)
        self._refresh_context_cache(user_id, chat_id)

        if self.extractor.should_run(session):
            # Hand over the whole history: facts from the first turn must stay extractable.
            self._tasks.spawn(
                self.extractor.extract_and_merge(user_id, list(session.turns)),
                label=f"profile:{user_id}",
            )
        return session.turns[-1]

    def _refresh_context_cache(self: "HybridMemory", user_id: str, chat_id: str) -> None:
        turns = self.sessions.recent(user_id, chat_id, limit=self.config.context_cache_turns)
        if not turns:
            self.context_cache.clear(user_id, chat_id)
            return
        text = f"RECENT CONVERSATIONS ({len(turns)}):\n{render_turns(turns)}"
        self.context_cache.set(user_id, chat_id, text)

    def end_chat(
        self: "HybridMemory",
        user_id: str,
        chat_id: str,
        force: bool = False,
    ) -> asyncio.Task:
        """Schedule persistence of a chat after a chat switch, sign-out or "save all".

        Raises:
            MissingIdentityError: If user_id or chat_id is empty
        """
        require_identity(user_id, chat_id, need_chat=True)
        return self._tasks.spawn(
            self.end_chat_async(user_id, chat_id, force=force),
            label=f"persist:{chat_id}",
        )

    async def end_chat_async(
        self: "HybridMemory",
        user_id: str,
        chat_id: str,
        force: bool = False,
        evict: bool = False,
        ignore_cooldown: bool = False,
    ) -> PersistResult:
        """Persist a chat now.

        Args:
            force: Ignore the cooldown and re-upload every turn
            evict: Drop the local session once everything in it is persisted
            ignore_cooldown: Ignore the cooldown, uploading only new turns
        """
        require_identity(user_id, chat_id, need_chat=True)

        persistence = self._get_persistence()
        if persistence is None:
            logger.warning(f"[PERSIST] Chat {chat_id} not persisted: {self._durable_disabled_reason}")
            return PersistResult(
                user_id=user_id,
                chat_id=chat_id,
                status="failed",
                error=self._durable_disabled_reason,
            )

        result = await persistence.on_chat_boundary(
            user_id, chat_id, force=force, ignore_cooldown=ignore_cooldown
        )

        if evict:
            session = self.sessions.get(user_id, chat_id)
            if session is not None and not session.unpersisted_turns():
                self.sessions.delete(user_id, chat_id)
                self.context_cache.clear(user_id, chat_id)
                persistence.release_lock(user_id, chat_id)
                logger.debug(f"[PERSIST] Evicted persisted session for chat {chat_id}")
        return result

    async def sweep(self: "HybridMemory") -> dict[str, int]:
        """Periodic maintenance: persist abandoned chats, evict stale sessions, purge cache.

        Stale sessions with unpersisted turns get their new turns persisted
        past the cooldown first. The ones that still fail stay until the hard TTL.
        """
        max_age = timedelta(seconds=self.config.session_ttl_seconds)
        hard_max_age = timedelta(seconds=self.config.session_hard_ttl_seconds)

        evicted = self.sessions.evict_stale(max_age, hard_max_age)

        persisted = failed = 0
        for session in self.sessions.pending_sessions():
            result = await self.end_chat_async(session.user_id, session.chat_id, ignore_cooldown=True)
            if result.status == "persisted":
                persisted += 1
            elif result.status == "failed":
                failed += 1

        if persisted:
            evicted.extend(self.sessions.evict_stale(max_age, hard_max_age))

        persistence = self._persistence
        for session in evicted:
            self.context_cache.clear(session.user_id, session.chat_id)
            if persistence is not None:
                persistence.release_lock(session.user_id, session.chat_id)
        purged = self.context_cache.purge_expired()

        stats = {
            "evicted": len(evicted),
            "persisted": persisted,
            "failed": failed,
            "cache_purged": purged,
        }
        logger.info(f"[SWEEP] {stats}")
        return stats
