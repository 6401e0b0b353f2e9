"""LLM utilities for chatmem.

Uses OpenRouter (through the OpenAI SDK) for the short completions the
memory subsystem needs: profile extraction and session summaries.

Environment Variables:
    OPENROUTER_API_KEY: Required. Your OpenRouter API key.
    CHATMEM_LLM_MODEL: Optional. Model in OpenRouter format (default: openai/gpt-4o-mini)
"""

from chatmem.llm.client import (
    OPENROUTER_BASE_URL,
    OPENROUTER_MODELS,
    CompletionClient,
    get_client,
)
from chatmem.llm.profile_extraction import (
    extract_profile_delta,
    format_conversation,
    parse_profile_delta,
)
from chatmem.llm.summarization import (
    extract_key_topics,
    keyword_topics,
    summarize_session,
)

__all__ = [
    "CompletionClient",
    "get_client",
    "OPENROUTER_BASE_URL",
    "OPENROUTER_MODELS",
    "extract_profile_delta",
    "format_conversation",
    "parse_profile_delta",
    "summarize_session",
    "extract_key_topics",
    "keyword_topics",
]
