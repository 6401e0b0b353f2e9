"""Background profile extraction.

Every N turns the extractor hands the session's entire turn history to the
completion client and merges whatever facts come back into the profile
store. Runs off the request path; failures only skip the update.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatmem.errors import CollaboratorError
from chatmem.lib.async_utils import with_timeout
from chatmem.llm.profile_extraction import extract_profile_delta
from chatmem.models import ChatSession, ConversationTurn, UserProfile

if TYPE_CHECKING:
    from chatmem.config import ChatMemConfig
    from chatmem.llm.client import CompletionClient
    from chatmem.memory.profile_store import UserProfileStore

logger = logging.getLogger(__name__)


class ProfileExtractor:
    """Derives profile deltas from conversation turns."""

    def __init__(
        self,
        profile_store: UserProfileStore,
        config: ChatMemConfig,
        client: CompletionClient | None = None,
    ):
        self.profile_store = profile_store
        self.config = config
        self._client = client
        self._client_unavailable = False

    def resolve_client(self) -> CompletionClient | None:
        if self._client is None and not self._client_unavailable:
            from chatmem.llm.client import get_client

            try:
                self._client = get_client()
            except ValueError as e:
                self._client_unavailable = True
                logger.warning(f"[PROFILE] Extraction disabled: {e}")
        return self._client

    def should_run(self, session: ChatSession) -> bool:
        """True when the session just reached a multiple of N turns."""
        every = self.config.profile_extraction_every_n_turns
        if not self.config.enable_profile_extraction or every <= 0:
            return False
        count = len(session.turns)
        return count > 0 and count % every == 0

    async def extract_and_merge(
        self,
        user_id: str,
        turns: list[ConversationTurn],
    ) -> UserProfile | None:
        """Extract a delta from the full turn history and merge it.

        Returns:
            The updated profile, or None when nothing was merged
        """
        if not turns:
            return None
        client = self.resolve_client()
        if client is None:
            return None

        try:
            delta = await with_timeout(
                extract_profile_delta(client, turns, model=self.config.llm_model),
                self.config.collaborator_timeout_seconds,
                "llm",
            )
        except CollaboratorError as e:
            logger.warning(f"[PROFILE] Extraction failed for user {user_id}, profile unchanged: {e}")
            return None

        if delta.is_empty():
            logger.debug(f"[PROFILE] Nothing extracted from {len(turns)} turns for user {user_id}")
            return None

        logger.info(f"[PROFILE] Extracted profile update from {len(turns)} turns for user {user_id}")
        return self.profile_store.upsert(user_id, delta, from_conversation=True)
