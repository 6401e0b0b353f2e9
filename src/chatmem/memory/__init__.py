"""Hybrid memory: session, profile and durable tiers behind one facade."""

from chatmem.memory.context_cache import RecentContextCache
from chatmem.memory.core import HybridMemory
from chatmem.memory.persistence import PersistenceScheduler
from chatmem.memory.profile_extractor import ProfileExtractor
from chatmem.memory.profile_store import UserProfileStore
from chatmem.memory.session_store import SessionStore
from chatmem.memory.storage import InMemoryStoragePort, StoragePort
from chatmem.memory.strategy import StrategyPatterns, StrategySelector, select_strategy

__all__ = [
    "HybridMemory",
    "SessionStore",
    "UserProfileStore",
    "ProfileExtractor",
    "PersistenceScheduler",
    "RecentContextCache",
    "StrategyPatterns",
    "StrategySelector",
    "select_strategy",
    "StoragePort",
    "InMemoryStoragePort",
]
