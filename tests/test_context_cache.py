"""Tests for the recent-context cache and context rendering."""

from datetime import timedelta

from chatmem.memory.context_cache import RecentContextCache
from chatmem.memory.formatting import (
    format_time_ago,
    render_matches,
    significant_terms,
)
from chatmem.models import VectorMatch, _utcnow


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRecentContextCache:
    def test_hit_and_expiry(self):
        clock = FakeClock()
        cache = RecentContextCache(ttl_seconds=60, clock=clock)
        cache.set("u1", "c1", "context")

        assert cache.get("u1", "c1") == "context"
        clock.now += 61
        assert cache.get("u1", "c1") is None
        assert cache.stats() == {"entries": 0, "hits": 1, "misses": 1}

    def test_clear_scopes(self):
        cache = RecentContextCache()
        cache.set("u1", "c1", "a")
        cache.set("u1", "c2", "b")
        cache.set("u2", "c3", "c")

        assert cache.clear("u1", "c1") == 1
        assert cache.clear("u1") == 1
        assert len(cache) == 1
        assert cache.clear() == 1

    def test_purge_expired(self):
        clock = FakeClock()
        cache = RecentContextCache(ttl_seconds=10, clock=clock)
        cache.set("u1", "c1", "old")
        clock.now += 5
        cache.set("u1", "c2", "new")
        clock.now += 6

        assert cache.purge_expired() == 1
        assert cache.get("u1", "c2") == "new"


class TestFormatting:
    def test_time_ago(self):
        now = _utcnow()
        assert format_time_ago(now, now) == "just now"
        assert format_time_ago(now - timedelta(minutes=5), now) == "5m ago"
        assert format_time_ago(now - timedelta(hours=3), now) == "3h ago"
        assert format_time_ago(now - timedelta(days=2), now) == "2d ago"
        assert format_time_ago(now - timedelta(days=30), now) == (now - timedelta(days=30)).strftime("%Y-%m-%d")

    def test_time_ago_from_iso_string(self):
        now = _utcnow()
        assert format_time_ago((now - timedelta(hours=1)).isoformat(), now) == "1h ago"
        assert format_time_ago("yesterday-ish", now) == "unknown"

    def test_significant_terms_drop_memory_vocabulary(self):
        assert significant_terms("Remember what we discussed about pricing?") == {"pricing"}

    def test_render_matches(self):
        match = VectorMatch(id="x", content="We chose Postgres", score=0.876, metadata={})

        assert render_matches([match]) == "1. [unknown, 87.6% match] We chose Postgres"
