"""chatmem - hybrid memory and context retrieval for chat assistants.

Three tiers (per-chat sessions, cross-chat user profiles, a pgvector durable
store) behind one facade that decides per message how much history to fetch.
"""

from importlib.metadata import version

from chatmem.config import ChatMemConfig
from chatmem.memory import HybridMemory

__version__ = version("chatmem")
__all__ = ["HybridMemory", "ChatMemConfig", "__version__"]
