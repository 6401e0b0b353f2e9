"""Data models for chatmem."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


def _new_turn_id() -> str:
    return f"turn_{uuid4().hex[:16]}"


class MemoryStrategy(str, Enum):
    """Depth of memory retrieval chosen for a single query."""

    SKIP = "skip"
    PROFILE_ONLY = "profile-only"
    CACHED = "cached"
    FULL = "full"


class Attachment(BaseModel):
    """Reference to a generated or uploaded image. Never raw binary."""

    model_config = ConfigDict(frozen=True)

    url: str
    prompt: str | None = None


class ConversationTurn(BaseModel):
    """One user/assistant exchange. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    turn_id: str = Field(default_factory=_new_turn_id)
    user_id: str
    chat_id: str
    user_prompt: str
    ai_response: str
    timestamp: datetime = Field(default_factory=_utcnow)
    attachment: Attachment | None = None


class SessionSummary(BaseModel):
    """LLM summary of a chat session, kept locally and mirrored to the durable store."""

    session_id: str
    user_id: str
    chat_id: str
    summary: str
    key_topics: list[str] = Field(default_factory=list)
    turn_count: int
    timespan_start: datetime
    timespan_end: datetime
    created_at: datetime = Field(default_factory=_utcnow)


class ChatSession(BaseModel):
    """In-memory aggregate for one (user, chat) pair."""

    session_id: str
    user_id: str
    chat_id: str
    turns: list[ConversationTurn] = Field(default_factory=list)
    summary: SessionSummary | None = Field(
        default=None,
        description="Latest summary; each persistence run replaces it",
    )
    started_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)
    is_persisted: bool = False
    last_upload_at: datetime | None = None
    persisted_turn_ids: set[str] = Field(default_factory=set)
    pending_persist: bool = Field(
        default=False,
        description="Flagged by eviction: stale but still holding unpersisted turns",
    )

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.chat_id)

    def unpersisted_turns(self) -> list[ConversationTurn]:
        return [t for t in self.turns if t.turn_id not in self.persisted_turn_ids]


class UserProfile(BaseModel):
    """Cross-chat facts about a user. Set-valued fields are ordered, duplicate-free lists."""

    user_id: str
    name: str | None = None
    role: str | None = None
    background: str | None = None
    interests: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    conversation_style: str | None = None
    conversation_count: int = 0
    extracted_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)


class ProfileDelta(BaseModel):
    """Partial profile fields produced by extraction or a manual override."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    role: str | None = None
    background: str | None = None
    interests: list[str] | None = None
    preferences: list[str] | None = None
    conversation_style: str | None = None

    def is_empty(self) -> bool:
        return not any(
            [
                self.name,
                self.role,
                self.background,
                self.interests,
                self.preferences,
                self.conversation_style,
            ]
        )


class LongTermMemoryRecord(BaseModel):
    """A durable, searchable unit in the vector store.

    Ids are deterministic so re-uploading the same message overwrites it.
    """

    id: str
    content: str
    embedding: list[float] | None = None
    user_id: str
    chat_id: str
    role: Literal["user", "assistant", "summary"]
    timestamp: datetime
    turn_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)

    @staticmethod
    def message_id(user_id: str, chat_id: str, turn_id: str, role: str) -> str:
        return f"{user_id}:{chat_id}:{turn_id}:{role}"

    @staticmethod
    def summary_id(user_id: str, chat_id: str) -> str:
        return f"{user_id}:{chat_id}:summary"

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "role": self.role,
            "timestamp": self.timestamp.isoformat(),
            "turn_id": self.turn_id,
            "tags": list(self.tags),
            **self.extra,
        }


class VectorMatch(BaseModel):
    """A similarity match returned by the vector store."""

    id: str
    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def chat_id(self) -> str | None:
        return self.metadata.get("chat_id")


_PRESETS: dict[str, dict[str, Any]] = {
    "cost-optimized": {
        "max_local_results": 3,
        "max_long_term_results": 1,
        "skip_durable_if_local_found": True,
        "min_local_results_for_skip": 1,
        "threshold": 0.4,
    },
    "balanced": {
        "max_local_results": 3,
        "max_long_term_results": 2,
        "skip_durable_if_local_found": True,
        "min_local_results_for_skip": 2,
        "threshold": 0.3,
    },
    "comprehensive": {
        "max_local_results": 5,
        "max_long_term_results": 5,
        "skip_durable_if_local_found": False,
        "threshold": 0.2,
    },
}


class MemorySearchOptions(BaseModel):
    """Per-call overrides for a memory search. Unset fields fall back to config."""

    max_local_results: int | None = None
    max_long_term_results: int | None = None
    threshold: float | None = None
    skip_durable_if_local_found: bool | None = None
    min_local_results_for_skip: int | None = None
    include_local_summaries: bool = True
    strategy: MemoryStrategy | None = Field(
        default=None,
        description="Force a strategy instead of running the selector",
    )

    @classmethod
    def preset(
        cls, scenario: Literal["cost-optimized", "balanced", "comprehensive"]
    ) -> "MemorySearchOptions":
        """Build options for one of the named search scenarios."""
        if scenario not in _PRESETS:
            raise ValueError(f"Unknown search preset: {scenario}. Use: {sorted(_PRESETS)}")
        return cls(**_PRESETS[scenario])


class MemorySearchResult(BaseModel):
    """Context assembled for one inbound user message."""

    strategy: MemoryStrategy
    context_text: str = ""
    result_counts: dict[str, int] = Field(
        default_factory=lambda: {"local": 0, "long_term": 0, "summaries": 0}
    )
    used_profile: bool = False
    skipped_durable_search: bool = False
    skip_reason: str | None = None
    local_results: list[ConversationTurn] = Field(default_factory=list)
    long_term_results: list[VectorMatch] = Field(default_factory=list)


class PersistResult(BaseModel):
    """Outcome of one persistence attempt for a chat."""

    user_id: str
    chat_id: str
    status: Literal["persisted", "cooldown", "up_to_date", "empty", "missing", "failed"]
    records_upserted: int = 0
    error: str | None = None
