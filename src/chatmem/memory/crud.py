"""Profile, erasure and inspection operations for HybridMemory."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from chatmem.errors import require_identity
from chatmem.lib.async_utils import with_timeout
from chatmem.memory.formatting import render_turns
from chatmem.models import ProfileDelta, UserProfile

if TYPE_CHECKING:
    from chatmem.memory.core import HybridMemory

logger = logging.getLogger(__name__)


class CRUDMixin:
    """Mixin class providing profile management, erasure and inspection."""

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_profile(self: "HybridMemory", user_id: str) -> UserProfile | None:
        require_identity(user_id)
        return self.profiles.get(user_id)

    def upsert_profile(
        self: "HybridMemory",
        user_id: str,
        fields: ProfileDelta | dict[str, Any],
    ) -> UserProfile:
        """Manual profile override, merged with the same rules as extraction."""
        require_identity(user_id)
        return self.profiles.upsert(user_id, fields)

    def delete_profile(self: "HybridMemory", user_id: str) -> bool:
        require_identity(user_id)
        return self.profiles.delete(user_id)

    # =========================================================================
    # Erasure
    # =========================================================================

    async def erase_chat(self: "HybridMemory", user_id: str, chat_id: str) -> int:
        """Delete a chat from every tier.

        Returns:
            Number of durable records deleted

        Raises:
            CollaboratorError: If the durable store delete fails
        """
        require_identity(user_id, chat_id, need_chat=True)

        deleted = 0
        persistence = self._get_persistence()
        lock = persistence.lock_for(user_id, chat_id) if persistence else contextlib.nullcontext()
        # Hold the persistence lock so an in-flight upload cannot re-create records.
        async with lock:
            if persistence is not None:
                deleted = await with_timeout(
                    self._vector_store.delete({"user_id": user_id, "chat_id": chat_id}),
                    self.config.collaborator_timeout_seconds,
                    "vector_store",
                )
            self.sessions.delete(user_id, chat_id)
            self.context_cache.clear(user_id, chat_id)
        if persistence is not None:
            persistence.release_lock(user_id, chat_id)

        logger.info(f"[MEMORY] Erased chat {chat_id} for user {user_id} ({deleted} durable records)")
        return deleted

    async def erase_user(self: "HybridMemory", user_id: str) -> int:
        """Delete everything known about a user, including the profile.

        Returns:
            Number of durable records deleted
        """
        require_identity(user_id)

        deleted = 0
        if self._ensure_durable():
            deleted = await with_timeout(
                self._vector_store.delete({"user_id": user_id}),
                self.config.collaborator_timeout_seconds,
                "vector_store",
            )
        sessions = self.sessions.delete_user(user_id)
        self.context_cache.clear(user_id)
        self.profiles.delete(user_id)
        if self._persistence is not None:
            self._persistence.release_user_locks(user_id)

        logger.info(
            f"[MEMORY] Erased user {user_id}: {deleted} durable records, {sessions} sessions"
        )
        return deleted

    # =========================================================================
    # Inspection
    # =========================================================================

    def recent_context(self: "HybridMemory", user_id: str, max_turns: int = 10) -> str:
        """The user's latest turns across chats, oldest first."""
        require_identity(user_id)
        turns = self.sessions.recent(user_id, limit=max_turns)
        if not turns:
            return ""
        return f"RECENT CONVERSATIONS ({len(turns)}):\n{render_turns(turns)}"

    def debug_info(self: "HybridMemory", user_id: str | None = None) -> dict[str, Any]:
        info: dict[str, Any] = {
            **self.sessions.stats(user_id),
            "cache": self.context_cache.stats(),
            "pending_tasks": self.pending_tasks,
            "durable_disabled_reason": self._durable_disabled_reason,
        }
        if user_id:
            info["has_profile"] = self.profiles.get(user_id) is not None
        else:
            info["profiles"] = len(self.profiles.all_profiles())
        return info
