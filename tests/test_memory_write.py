"""Tests for the HybridMemory write path: turns, persistence, sweep and erasure."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chatmem.config import ChatMemConfig
from chatmem.errors import CollaboratorError, MissingIdentityError
from chatmem.memory import HybridMemory
from chatmem.models import Attachment

FOUR_TURNS = [
    ("Plan a launch for our app", "Start with a beta list."),
    ("What about pricing?", "Offer a free tier."),
    ("Which channels?", "Product Hunt and newsletters."),
    ("Timeline?", "Six weeks."),
]


async def _fill_chat(memory, chat_id="c1", pairs=FOUR_TURNS, user_id="u1"):
    for prompt, response in pairs:
        await memory.record_turn_async(user_id, chat_id, prompt, response)


def _memory(fake_store, fake_embedder, llm=None, **overrides):
    overrides.setdefault("enable_profile_extraction", False)
    return HybridMemory(ChatMemConfig(**overrides), embedder=fake_embedder, vector_store=fake_store, llm=llm)


def _summary_llm():
    def respond(prompt, system=None, **kwargs):
        if "comma-separated" in (system or ""):
            return "product-launch, pricing"
        return "The user planned a product launch with a free tier."

    llm = MagicMock()
    llm.complete = AsyncMock(side_effect=respond)
    return llm


class TestRecordTurn:
    """record_turn schedules the append instead of doing it inline."""

    @pytest.mark.asyncio
    async def test_append_not_visible_in_same_tick(self, memory):
        task = memory.record_turn("u1", "c1", "What's the capital of Peru?", "Lima.")

        assert memory.sessions.get("u1", "c1") is None
        assert memory.pending_tasks == 1

        turn = await task

        session = memory.sessions.get("u1", "c1")
        assert session.turns == [turn]
        assert turn.user_prompt == "What's the capital of Peru?"

    @pytest.mark.asyncio
    async def test_search_does_not_wait_for_write(self, memory):
        memory.record_turn("u1", "c1", "Pricing for the starter plan?", "$10 a month.")

        result = await memory.search("u1", "remember the pricing?", chat_id="c1", turn_index=1)
        assert result.result_counts["local"] == 0

        await memory.drain()
        result = await memory.search("u1", "remember the pricing?", chat_id="c1", turn_index=1)
        assert result.result_counts["local"] == 1

    @pytest.mark.asyncio
    async def test_missing_chat_id_rejected_synchronously(self, memory):
        with pytest.raises(MissingIdentityError):
            memory.record_turn("u1", "", "q", "a")
        assert memory.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_background_failure_is_logged_not_raised(self, memory, caplog):
        with patch.object(memory.sessions, "append", side_effect=RuntimeError("disk full")):
            memory.record_turn("u1", "c1", "q", "a")
            with caplog.at_level(logging.ERROR):
                await memory.drain()

        assert "disk full" in caplog.text
        assert memory.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_attachment_dict(self, memory):
        turn = await memory.record_turn_async(
            "u1", "c1", "Draw a fox", "Here it is.", attachment={"url": "https://img/fox.png", "prompt": "a fox"}
        )

        assert turn.attachment == Attachment(url="https://img/fox.png", prompt="a fox")

    @pytest.mark.asyncio
    async def test_record_refreshes_context_cache(self, memory):
        await memory.record_turn_async("u1", "c1", "Plan a trip", "Where to?")

        assert "Plan a trip" in memory.context_cache.get("u1", "c1")


class TestEndChat:
    """Persistence on chat boundaries."""

    @pytest.mark.asyncio
    async def test_four_turns_make_eight_upserts_then_cooldown(self, memory, fake_store, fake_embedder):
        await _fill_chat(memory)

        result = await memory.end_chat("u1", "c1")

        assert result.status == "persisted"
        assert result.records_upserted == 8
        assert fake_store.upserted == 8
        assert fake_embedder.batch_calls == [8]
        session = memory.sessions.get("u1", "c1")
        assert session.is_persisted is True
        assert session.last_upload_at is not None

        again = await memory.end_chat("u1", "c1")

        assert again.status == "cooldown"
        assert fake_store.upserted == 8

    @pytest.mark.asyncio
    async def test_record_ids_are_deterministic(self, memory, fake_store):
        await _fill_chat(memory, pairs=FOUR_TURNS[:1])
        await memory.end_chat_async("u1", "c1")

        turn_id = memory.sessions.get("u1", "c1").turns[0].turn_id
        assert set(fake_store.records) == {f"u1:c1:{turn_id}:user", f"u1:c1:{turn_id}:assistant"}
        record = fake_store.records[f"u1:c1:{turn_id}:user"]
        assert record.metadata["chat_id"] == "c1"
        assert record.metadata["role"] == "user"
        assert record.embedding is not None

    @pytest.mark.asyncio
    async def test_forced_persistence_is_idempotent(self, memory, fake_store):
        await _fill_chat(memory)

        await memory.end_chat_async("u1", "c1", force=True)
        first = {rid: r.content for rid, r in fake_store.records.items()}
        await memory.end_chat_async("u1", "c1", force=True)

        assert len(fake_store.upsert_calls) == 2
        assert {rid: r.content for rid, r in fake_store.records.items()} == first
        assert len(fake_store.records) == 8

    @pytest.mark.asyncio
    async def test_only_new_turns_uploaded(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, persist_cooldown_seconds=0)
        await _fill_chat(memory)
        await memory.end_chat_async("u1", "c1")

        await memory.record_turn_async("u1", "c1", "One more thing", "Sure.")
        assert memory.sessions.get("u1", "c1").is_persisted is False

        result = await memory.end_chat_async("u1", "c1")

        assert result.records_upserted == 2
        assert fake_store.upserted == 10

    @pytest.mark.asyncio
    async def test_up_to_date(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, persist_cooldown_seconds=0)
        await _fill_chat(memory)
        await memory.end_chat_async("u1", "c1")

        result = await memory.end_chat_async("u1", "c1")

        assert result.status == "up_to_date"
        assert fake_store.upserted == 8

    @pytest.mark.asyncio
    async def test_upload_batches_respect_max_size(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, vector_batch_size=3)
        await _fill_chat(memory)

        await memory.end_chat_async("u1", "c1")

        assert [len(ids) for ids in fake_store.upsert_calls] == [3, 3, 2]

    @pytest.mark.asyncio
    async def test_failure_leaves_session_unpersisted(self, memory, fake_store):
        await _fill_chat(memory)
        fake_store.upsert_error = CollaboratorError("vector_store", "connection refused")

        result = await memory.end_chat_async("u1", "c1")

        assert result.status == "failed"
        assert "connection refused" in result.error
        session = memory.sessions.get("u1", "c1")
        assert session.is_persisted is False
        assert session.last_upload_at is None

        fake_store.upsert_error = None
        retry = await memory.end_chat_async("u1", "c1")
        assert retry.status == "persisted"

    @pytest.mark.asyncio
    async def test_unknown_and_empty_chats(self, memory, fake_store):
        result = await memory.end_chat_async("u1", "never-used")

        assert result.status == "missing"
        assert fake_store.upsert_calls == []

    @pytest.mark.asyncio
    async def test_evict_after_persist(self, memory):
        await _fill_chat(memory)

        await memory.end_chat_async("u1", "c1", evict=True)

        assert memory.sessions.get("u1", "c1") is None
        assert memory.context_cache.get("u1", "c1") is None

    @pytest.mark.asyncio
    async def test_without_durable_store(self, config):
        memory = HybridMemory(config)
        await _fill_chat(memory)

        result = await memory.end_chat_async("u1", "c1")

        assert result.status == "failed"
        assert memory.sessions.get("u1", "c1").is_persisted is False

    @pytest.mark.asyncio
    async def test_session_summary_record(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, llm=_summary_llm(), persist_session_summary=True)
        await _fill_chat(memory)

        result = await memory.end_chat_async("u1", "c1")

        assert result.records_upserted == 9
        summary = fake_store.records["u1:c1:summary"]
        assert summary.role == "summary"
        assert "product launch" in summary.content
        session = memory.sessions.get("u1", "c1")
        assert session.summary.key_topics == ["product-launch", "pricing"]
        assert session.summary.turn_count == 4

    @pytest.mark.asyncio
    async def test_summary_is_replaced_on_each_run(self, fake_store, fake_embedder):
        memory = _memory(
            fake_store,
            fake_embedder,
            llm=_summary_llm(),
            persist_session_summary=True,
            persist_cooldown_seconds=0,
        )
        await _fill_chat(memory)
        await memory.end_chat_async("u1", "c1")
        await memory.record_turn_async("u1", "c1", "One more thing", "Sure.")
        await memory.end_chat_async("u1", "c1")

        summaries = memory.sessions.summaries("u1", "c1")
        assert len(summaries) == 1
        assert summaries[0].turn_count == 5

        result = await memory.search(
            "u1", "explain the kubernetes deployment strategy in detail", chat_id="c1", turn_index=5
        )

        assert result.result_counts["local"] == 0
        assert result.result_counts["summaries"] == 1
        assert result.skip_reason is None
        assert len(fake_store.query_calls) == 1


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_persists_then_evicts_abandoned_chat(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, session_ttl_seconds=0)
        await _fill_chat(memory, pairs=FOUR_TURNS[:1])

        stats = await memory.sweep()

        assert stats["persisted"] == 1
        assert stats["evicted"] == 1
        assert fake_store.upserted == 2
        assert memory.sessions.get("u1", "c1") is None

    @pytest.mark.asyncio
    async def test_sweep_keeps_chat_that_fails_to_persist(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, session_ttl_seconds=0)
        await _fill_chat(memory, pairs=FOUR_TURNS[:1])
        fake_store.upsert_error = CollaboratorError("vector_store", "down")

        stats = await memory.sweep()

        assert stats["failed"] == 1
        assert stats["evicted"] == 0
        assert memory.sessions.get("u1", "c1").pending_persist is True

    @pytest.mark.asyncio
    async def test_sweep_uploads_only_new_turns_past_cooldown(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, session_ttl_seconds=0)
        await _fill_chat(memory)
        await memory.end_chat_async("u1", "c1")
        await memory.record_turn_async("u1", "c1", "One more thing", "Sure.")

        stats = await memory.sweep()

        assert stats["persisted"] == 1
        assert fake_store.upserted == 10
        assert fake_embedder.batch_calls == [8, 2]
        assert memory.sessions.get("u1", "c1") is None

    @pytest.mark.asyncio
    async def test_sweep_releases_chat_locks(self, fake_store, fake_embedder):
        memory = _memory(fake_store, fake_embedder, session_ttl_seconds=0)
        await _fill_chat(memory, pairs=FOUR_TURNS[:1])

        await memory.sweep()

        assert memory._persistence._locks == {}


class TestErasure:
    @pytest.mark.asyncio
    async def test_erase_chat(self, memory, fake_store):
        await _fill_chat(memory, "c1", FOUR_TURNS[:1])
        await _fill_chat(memory, "c2", FOUR_TURNS[1:2])
        await memory.end_chat_async("u1", "c1")
        await memory.end_chat_async("u1", "c2")

        deleted = await memory.erase_chat("u1", "c1")

        assert deleted == 2
        assert fake_store.delete_calls == [{"user_id": "u1", "chat_id": "c1"}]
        assert all(r.chat_id == "c2" for r in fake_store.records.values())
        assert memory.sessions.get("u1", "c1") is None
        assert memory.sessions.get("u1", "c2") is not None
        assert ("u1", "c1") not in memory._persistence._locks
        assert ("u1", "c2") in memory._persistence._locks

    @pytest.mark.asyncio
    async def test_erase_user_removes_profile(self, memory, fake_store):
        memory.upsert_profile("u1", {"name": "Sam"})
        await _fill_chat(memory, "c1", FOUR_TURNS[:2])
        await memory.end_chat_async("u1", "c1")

        deleted = await memory.erase_user("u1")

        assert deleted == 4
        assert fake_store.records == {}
        assert memory.get_profile("u1") is None
        assert memory.sessions.sessions_for_user("u1") == []
        assert memory._persistence._locks == {}

    @pytest.mark.asyncio
    async def test_held_lock_is_not_released(self, memory):
        persistence = memory._get_persistence()
        async with persistence.lock_for("u1", "c1"):
            assert persistence.release_lock("u1", "c1") is False

        assert persistence.release_lock("u1", "c1") is True


class TestInspection:
    @pytest.mark.asyncio
    async def test_recent_context_across_chats(self, memory):
        await _fill_chat(memory, "c1", [("first question", "first answer")])
        await _fill_chat(memory, "c2", [("second question", "second answer")])

        context = memory.recent_context("u1", max_turns=10)

        assert context.startswith("RECENT CONVERSATIONS (2)")
        assert context.index("first question") < context.index("second question")
        assert "just now" in context

    def test_recent_context_empty(self, memory):
        assert memory.recent_context("u1") == ""

    @pytest.mark.asyncio
    async def test_debug_info(self, memory):
        memory.upsert_profile("u1", {"name": "Sam"})
        await _fill_chat(memory, "c1", FOUR_TURNS[:2])

        info = memory.debug_info("u1")

        assert info["sessions"] == 1
        assert info["turns"] == 2
        assert info["has_profile"] is True
        assert info["pending_tasks"] == 0
