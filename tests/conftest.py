"""Pytest configuration for chatmem tests."""

import os

import pytest

from chatmem.config import ChatMemConfig
from chatmem.models import LongTermMemoryRecord, VectorMatch


@pytest.fixture(autouse=True)
def clean_chatmem_env(monkeypatch, tmp_path):
    """Clear chatmem environment variables and prevent .env loading for test isolation."""
    for var in [k for k in os.environ if k.startswith("CHATMEM_")]:
        monkeypatch.delenv(var, raising=False)

    # Also clear API keys that might interfere
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

    # Change to temp directory to avoid loading local .env file
    monkeypatch.chdir(tmp_path)

    yield


def _matches_filter(metadata: dict, metadata_filter: dict | None) -> bool:
    return all(
        metadata.get(key) == value
        for key, value in (metadata_filter or {}).items()
        if value is not None
    )


class FakeVectorStore:
    """In-memory VectorStore that records every call."""

    def __init__(self, honor_filter: bool = True):
        self.records: dict[str, LongTermMemoryRecord] = {}
        self.matches: list[VectorMatch] = []
        self.honor_filter = honor_filter
        self.upsert_calls: list[list[str]] = []
        self.query_calls: list[dict] = []
        self.delete_calls: list[dict] = []
        self.upsert_error: Exception | None = None
        self.query_error: Exception | None = None

    @property
    def upserted(self) -> int:
        return sum(len(ids) for ids in self.upsert_calls)

    async def upsert(self, records):
        if self.upsert_error is not None:
            raise self.upsert_error
        self.upsert_calls.append([r.id for r in records])
        for record in records:
            self.records[record.id] = record
        return len(records)

    async def query(self, vector, metadata_filter, top_k, threshold):
        self.query_calls.append({"filter": dict(metadata_filter or {}), "top_k": top_k, "threshold": threshold})
        if self.query_error is not None:
            raise self.query_error
        found = [
            m for m in self.matches
            if m.score >= threshold and (not self.honor_filter or _matches_filter(m.metadata, metadata_filter))
        ]
        return found[:top_k]

    async def delete(self, metadata_filter):
        self.delete_calls.append(dict(metadata_filter))
        doomed = [rid for rid, r in self.records.items() if _matches_filter(r.metadata, metadata_filter)]
        for rid in doomed:
            del self.records[rid]
        return len(doomed)


class FakeEmbedder:
    """Deterministic embedding collaborator."""

    def __init__(self, dim: int = 4):
        self.dim = dim
        self.embed_calls = 0
        self.batch_calls: list[int] = []

    async def embed(self, text):
        self.embed_calls += 1
        return [0.1] * self.dim

    async def embed_batch(self, texts, batch_size=100):
        self.batch_calls.append(len(texts))
        return [[0.1] * self.dim for _ in texts]

    async def close(self):
        pass


def make_match(content: str, user_id: str, chat_id: str, score: float = 0.8, turn_id: str = "t-old") -> VectorMatch:
    return VectorMatch(
        id=f"{user_id}:{chat_id}:{turn_id}:user",
        content=content,
        score=score,
        metadata={"user_id": user_id, "chat_id": chat_id, "role": "user", "turn_id": turn_id},
    )


@pytest.fixture
def fake_store():
    return FakeVectorStore()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def match_factory():
    return make_match


@pytest.fixture
def config():
    """Config with background profile extraction off unless a test enables it."""
    return ChatMemConfig(enable_profile_extraction=False)


@pytest.fixture
def memory(config, fake_store, fake_embedder):
    from chatmem.memory import HybridMemory

    return HybridMemory(config, embedder=fake_embedder, vector_store=fake_store)


@pytest.fixture
def store_factory():
    """Build extra FakeVectorStore instances (e.g. one that ignores filters)."""
    return FakeVectorStore
