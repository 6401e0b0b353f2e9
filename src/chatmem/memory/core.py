"""Hybrid memory orchestrator.

The facade the request-handling layer calls. It combines three tiers:

- session store: in-process turns of every live chat
- profile store: cross-chat facts about each user
- durable store: pgvector records queried by semantic similarity

Reads go through a per-query strategy (skip, profile-only, cached, full).
Writes are fire-and-forget background tasks scheduled after the answer has
been returned to the user.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatmem.config import ChatMemConfig
from chatmem.lib.async_utils import BackgroundTasks
from chatmem.memory.context_cache import RecentContextCache
from chatmem.memory.crud import CRUDMixin
from chatmem.memory.persistence import PersistenceScheduler
from chatmem.memory.profile_extractor import ProfileExtractor
from chatmem.memory.profile_store import UserProfileStore
from chatmem.memory.search import SearchMixin
from chatmem.memory.session_store import SessionStore
from chatmem.memory.strategy import StrategySelector
from chatmem.memory.write import WriteMixin

if TYPE_CHECKING:
    from chatmem.embedding import AsyncEmbeddingClient
    from chatmem.llm.client import CompletionClient
    from chatmem.vectorstore import VectorStore

logger = logging.getLogger(__name__)


class HybridMemory(SearchMixin, WriteMixin, CRUDMixin):
    """Tiered conversational memory for a chat assistant.

    Collaborators can be injected; anything not injected is created lazily
    from config. When the durable store or the embedding client cannot be
    created (no database URL or API key), durable features are disabled and
    the session and profile tiers keep working.
    """

    def __init__(
        self,
        config: ChatMemConfig | None = None,
        *,
        embedder: AsyncEmbeddingClient | None = None,
        vector_store: VectorStore | None = None,
        llm: CompletionClient | None = None,
        session_store: SessionStore | None = None,
        profile_store: UserProfileStore | None = None,
        selector: StrategySelector | None = None,
    ):
        """Initialize the memory.

        Args:
            config: chatmem configuration. If None, loads from environment.
            embedder: Embedding collaborator (defaults to AsyncEmbeddingClient)
            vector_store: Durable store collaborator (defaults to PgVectorStore)
            llm: Completion collaborator for profile extraction and summaries
            session_store: Session tier (defaults to an in-memory store)
            profile_store: Profile tier (defaults to an in-memory store)
            selector: Strategy selector (defaults to the built-in patterns)
        """
        self.config = config or ChatMemConfig()
        self.sessions = session_store or SessionStore()
        self.profiles = profile_store or UserProfileStore()
        self.selector = selector or StrategySelector(self.config)
        self.context_cache = RecentContextCache(self.config.context_cache_ttl_seconds)
        self.extractor = ProfileExtractor(self.profiles, self.config, client=llm)

        self._embedder = embedder
        self._vector_store = vector_store
        self._persistence: PersistenceScheduler | None = None
        self._durable_disabled_reason: str | None = None
        self._tasks = BackgroundTasks("chatmem")

    def _ensure_durable(self) -> bool:
        """Create the embedding client and durable store on first use.

        Returns:
            True when both collaborators are available
        """
        if self._embedder is not None and self._vector_store is not None:
            return True
        if self._durable_disabled_reason is not None:
            return False

        try:
            if self._embedder is None:
                from chatmem.embedding import AsyncEmbeddingClient

                self._embedder = AsyncEmbeddingClient(
                    model=self.config.embedding_model,
                    timeout=self.config.collaborator_timeout_seconds,
                )
            if self._vector_store is None:
                from chatmem.vectorstore import PgVectorStore

                self._vector_store = PgVectorStore(
                    database_url=self.config.database_url,
                    table=self.config.vector_table,
                    embedding_dim=self.config.embedding_dimension,
                    batch_size=self.config.vector_batch_size,
                )
        except ValueError as e:
            self._durable_disabled_reason = str(e)
            logger.warning(f"[MEMORY] Durable memory disabled: {e}")
            return False
        return True

    def _get_persistence(self) -> PersistenceScheduler | None:
        if self._persistence is None and self._ensure_durable():
            self._persistence = PersistenceScheduler(
                self.sessions,
                self._vector_store,  # type: ignore[arg-type]
                self._embedder,  # type: ignore[arg-type]
                self.config,
                llm=self.extractor.resolve_client() if self.config.persist_session_summary else None,
            )
        return self._persistence

    @property
    def pending_tasks(self) -> int:
        return self._tasks.pending

    async def drain(self) -> None:
        """Wait for every background write (turn appends, extraction, persistence)."""
        await self._tasks.drain()

    async def close(self) -> None:
        """Finish background work and release collaborator connections."""
        await self._tasks.drain()
        if self._embedder is not None and hasattr(self._embedder, "close"):
            await self._embedder.close()
        if self._vector_store is not None and hasattr(self._vector_store, "close"):
            await self._vector_store.close()
