"""Search operations for HybridMemory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatmem.errors import CollaboratorError, require_identity
from chatmem.lib.async_utils import with_timeout
from chatmem.lib.tokens import truncate_to_tokens
from chatmem.memory.formatting import (
    SECTION_SEPARATOR,
    render_matches,
    render_summaries,
    render_turns,
    significant_terms,
    turn_matches,
)
from chatmem.models import (
    ConversationTurn,
    MemorySearchOptions,
    MemorySearchResult,
    MemoryStrategy,
    VectorMatch,
)

if TYPE_CHECKING:
    from chatmem.memory.core import HybridMemory

logger = logging.getLogger(__name__)

MAX_SUMMARIES_IN_CONTEXT = 3


class SearchMixin:
    """Mixin class providing the read path of HybridMemory."""

    async def search(
        self: "HybridMemory",
        user_id: str,
        query: str,
        chat_id: str | None = None,
        turn_index: int | None = None,
        options: MemorySearchOptions | None = None,
    ) -> MemorySearchResult:
        """Build the memory context for one inbound user message.

        Args:
            user_id: User the message belongs to
            query: The user's message text
            chat_id: Current chat, if any
            turn_index: Position of the message in its chat (0 or None = new chat)
            options: Per-call overrides of the search settings

        Returns:
            MemorySearchResult with the context block and bookkeeping

        Raises:
            MissingIdentityError: If user_id is empty
        """
        require_identity(user_id)
        options = options or MemorySearchOptions()
        index = turn_index or 0
        strategy = options.strategy or self.selector.select(query, index)

        if strategy is MemoryStrategy.SKIP:
            return MemorySearchResult(strategy=strategy)

        if strategy is MemoryStrategy.CACHED:
            cached = self.context_cache.get(user_id, chat_id) if chat_id else None
            if cached is not None:
                return MemorySearchResult(strategy=strategy, context_text=cached)
            logger.debug(f"[MEMORY] No cached context for chat {chat_id}, using profile only")
            strategy = MemoryStrategy.PROFILE_ONLY

        if strategy is MemoryStrategy.PROFILE_ONLY:
            profile_context = self.profiles.generate_context(user_id)
            return MemorySearchResult(
                strategy=strategy,
                context_text=profile_context,
                used_profile=bool(profile_context),
            )

        return await self._search_full(user_id, query, chat_id, index, options)

    def _local_matches(
        self: "HybridMemory",
        user_id: str,
        query: str,
        chat_id: str | None,
        limit: int,
    ) -> list[ConversationTurn]:
        """Recent local turns sharing a significant term with the query, newest first."""
        terms = significant_terms(query)
        if not terms or limit <= 0:
            return []
        window = self.sessions.recent(user_id, chat_id, limit=self.config.local_search_window)
        matches = [turn for turn in reversed(window) if turn_matches(turn, terms)]
        return matches[:limit]

    async def _query_durable(
        self: "HybridMemory",
        user_id: str,
        query: str,
        chat_id: str | None,
        top_k: int,
        threshold: float,
    ) -> list[VectorMatch]:
        """Similarity query against the durable store.

        Raises:
            CollaboratorError: If embedding or the store query fails or times out
        """
        timeout = self.config.collaborator_timeout_seconds
        metadata_filter = {"user_id": user_id}
        if chat_id:
            metadata_filter["chat_id"] = chat_id

        vector = await with_timeout(self._embedder.embed(query), timeout, "embedding")
        matches = await with_timeout(
            self._vector_store.query(vector, metadata_filter, top_k, threshold),
            timeout,
            "vector_store",
        )
        # The store is trusted for filtering, but scoping is enforced here as well.
        return [
            m for m in matches
            if m.metadata.get("user_id", user_id) == user_id
            and (chat_id is None or m.chat_id == chat_id)
        ]

    async def _search_full(
        self: "HybridMemory",
        user_id: str,
        query: str,
        chat_id: str | None,
        index: int,
        options: MemorySearchOptions,
    ) -> MemorySearchResult:
        cfg = self.config
        max_local = options.max_local_results if options.max_local_results is not None else cfg.max_local_results
        max_long_term = (
            options.max_long_term_results
            if options.max_long_term_results is not None
            else cfg.max_long_term_results
        )
        threshold = options.threshold if options.threshold is not None else cfg.relevance_threshold
        skip_if_local = (
            options.skip_durable_if_local_found
            if options.skip_durable_if_local_found is not None
            else cfg.skip_durable_if_local_found
        )
        min_for_skip = (
            options.min_local_results_for_skip
            if options.min_local_results_for_skip is not None
            else cfg.min_local_results_for_skip
        )

        # A new chat looks across all of the user's chats, a continuing chat only at itself.
        scope_chat = chat_id if chat_id and index > 0 else None

        local = self._local_matches(user_id, query, scope_chat, max_local)
        summaries = []
        if options.include_local_summaries:
            summaries = self.sessions.summaries(user_id, scope_chat)[:MAX_SUMMARIES_IN_CONTEXT]

        long_term: list[VectorMatch] = []
        skipped = False
        skip_reason = None
        local_total = len(local) + len(summaries)

        if skip_if_local and local_total >= min_for_skip:
            skipped = True
            skip_reason = f"{local_total} local results (minimum {min_for_skip})"
            logger.info(f"[MEMORY] Skipping durable search for user {user_id}: {skip_reason}")
        elif max_long_term <= 0:
            skip_reason = "durable results disabled"
        elif not self._ensure_durable():
            skip_reason = "durable store unavailable"
        else:
            try:
                long_term = await self._query_durable(user_id, query, scope_chat, max_long_term, threshold)
            except CollaboratorError as e:
                skip_reason = "durable search failed"
                logger.warning(f"[MEMORY] Durable search failed for user {user_id}, using local results: {e}")

            local_turn_ids = {t.turn_id for t in local}
            long_term = [m for m in long_term if m.metadata.get("turn_id") not in local_turn_ids]

        profile_context = self.profiles.generate_context(user_id)

        sections = []
        if profile_context:
            sections.append(profile_context.strip())
        if local:
            sections.append(f"RECENT CONVERSATIONS ({len(local)}):\n{render_turns(local)}")
        if summaries:
            sections.append(f"CONVERSATION SUMMARIES ({len(summaries)}):\n{render_summaries(summaries)}")
        if long_term:
            sections.append(f"RELEVANT PAST MEMORIES ({len(long_term)}):\n{render_matches(long_term)}")

        context_text = truncate_to_tokens(SECTION_SEPARATOR.join(sections), cfg.max_context_tokens)

        logger.debug(
            f"[MEMORY] Full search for user {user_id} (chat: {scope_chat or 'all'}): "
            f"{len(local)} local, {len(summaries)} summaries, {len(long_term)} long-term"
        )
        return MemorySearchResult(
            strategy=MemoryStrategy.FULL,
            context_text=context_text,
            result_counts={"local": len(local), "long_term": len(long_term), "summaries": len(summaries)},
            used_profile=bool(profile_context),
            skipped_durable_search=skipped,
            skip_reason=skip_reason,
            local_results=local,
            long_term_results=long_term,
        )
