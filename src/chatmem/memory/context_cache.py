"""Short-lived cache of rendered recent turns, backing the 'cached' strategy."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RecentContextCache:
    """TTL map from (user_id, chat_id) to a rendered context string."""

    def __init__(self, ttl_seconds: float = 120, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[float, str]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, user_id: str, chat_id: str) -> str | None:
        key = (user_id, chat_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, text = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return text

    def set(self, user_id: str, chat_id: str, text: str) -> None:
        with self._lock:
            self._entries[(user_id, chat_id)] = (self._clock() + self.ttl_seconds, text)

    def clear(self, user_id: str | None = None, chat_id: str | None = None) -> int:
        """Drop entries for a chat, a user, or everything. Returns the number removed."""
        with self._lock:
            if user_id is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            keys = [
                k for k in self._entries
                if k[0] == user_id and (chat_id is None or k[1] == chat_id)
            ]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug(f"[CACHE] Purged {len(expired)} expired context entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        return {"entries": len(self), "hits": self.hits, "misses": self.misses}
