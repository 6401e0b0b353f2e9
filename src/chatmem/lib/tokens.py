"""Token counting for context budgets."""

import logging
from typing import Any

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

# None = not yet loaded, False = load failed, otherwise a tiktoken Encoding
_encoding: Any = None


def _get_encoding() -> Any:
    """Lazy-load the tiktoken encoding. Returns Encoding or None on failure."""
    global _encoding
    if _encoding is None:
        try:
            _encoding = tiktoken.get_encoding(DEFAULT_ENCODING)
        except Exception as e:
            logger.warning(f"Failed to load tiktoken encoding: {e}")
            _encoding = False
    return _encoding or None


def count_tokens(text: str) -> int:
    encoding = _get_encoding()
    if encoding is None:
        return len(text) // 4
    return len(encoding.encode(text))


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut text down to at most max_tokens tokens, marking the cut."""
    # A token always spans at least one character.
    if max_tokens <= 0 or len(text) <= max_tokens:
        return text

    encoding = _get_encoding()
    if encoding is None:
        max_chars = max_tokens * 4
        if len(text) <= max_chars:
            return text
        return text[:max_chars].rstrip() + "\n[...truncated...]"

    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens]).rstrip() + "\n[...truncated...]"
