"""Configuration for chatmem.

Environment Variables:
    - OPENROUTER_API_KEY: Required for embedding and LLM collaborator calls
    - CHATMEM_DATABASE_URL: PostgreSQL (pgvector) URL for the durable store

    Optional model configuration:
    - CHATMEM_EMBEDDING_MODEL: Embedding model (default: openai/text-embedding-3-small)
    - CHATMEM_LLM_MODEL: Model for profile extraction and summaries (default: openai/gpt-4o-mini)

    Every other field below can be overridden with a CHATMEM_<FIELD> variable.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChatMemConfig(BaseSettings):
    """chatmem configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHATMEM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Collaborator Settings
    # =========================================================================
    embedding_model: str = Field(
        default="openai/text-embedding-3-small",
        description="Embedding model (via OpenRouter)",
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding dimension (1536 for OpenAI text-embedding-3-small)",
    )
    llm_model: str = Field(
        default="openai/gpt-4o-mini",
        description="Model for profile extraction and session summaries",
    )
    database_url: str | None = Field(
        default=None,
        description="PostgreSQL connection URL for the pgvector durable store",
    )
    vector_table: str = Field(default="chat_memories", description="Durable store table name")
    vector_batch_size: int = Field(
        default=100,
        description="Maximum records per upsert call to the durable store",
    )
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        description="Deadline for any embedding, vector store or LLM call",
    )

    # =========================================================================
    # Session Store Settings
    # =========================================================================
    session_ttl_seconds: int = Field(
        default=30 * 60,
        description="Inactivity window after which a session is considered stale",
    )
    session_hard_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        description="Stale sessions are dropped after this even when unpersisted",
    )
    enable_sweep: bool = Field(default=True, description="Enable the periodic session sweep")
    sweep_interval_seconds: int = Field(default=600, description="Seconds between sweeps")

    # =========================================================================
    # Profile Extraction Settings
    # =========================================================================
    enable_profile_extraction: bool = Field(default=True)
    profile_extraction_every_n_turns: int = Field(
        default=3,
        description="Run the profile extractor every N accumulated turns in a session",
    )

    # =========================================================================
    # Strategy Settings
    # =========================================================================
    short_query_chars: int = Field(
        default=30,
        description="Queries shorter than this count as short (personal-info) queries",
    )
    greeting_profile_max_turn: int = Field(
        default=2,
        description="Greetings up to this turn index get the profile, later ones are skipped",
    )
    prefer_cached_context: bool = Field(
        default=False,
        description="Default rule yields 'cached' instead of 'profile-only' for established chats",
    )
    cached_min_turn: int = Field(default=3, description="First turn index eligible for 'cached'")

    # =========================================================================
    # Search Settings
    # =========================================================================
    max_local_results: int = Field(default=3, description="Local turns included in full search")
    max_long_term_results: int = Field(default=2, description="Durable matches in full search")
    relevance_threshold: float = Field(
        default=0.3,
        description="Minimum similarity score for durable matches",
    )
    skip_durable_if_local_found: bool = Field(default=True)
    min_local_results_for_skip: int = Field(
        default=2,
        description="Local matches needed to skip the durable store query",
    )
    local_search_window: int = Field(
        default=50,
        description="How many recent local turns are scanned for relevance",
    )
    max_context_tokens: int = Field(
        default=2000,
        description="Token budget for the combined context block",
    )

    # =========================================================================
    # Recent-Context Cache Settings
    # =========================================================================
    context_cache_ttl_seconds: int = Field(default=120)
    context_cache_turns: int = Field(default=5, description="Turns rendered into the cache")

    # =========================================================================
    # Persistence Settings
    # =========================================================================
    persist_cooldown_seconds: int = Field(
        default=60,
        description="Minimum interval between two non-forced uploads of the same chat",
    )
    persist_session_summary: bool = Field(
        default=False,
        description="Also summarize each persisted chat and store one summary record",
    )
