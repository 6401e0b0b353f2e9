"""Retrieval strategy selection.

A pure function over the normalized query text and the turn's position in
its chat. The keyword lists live in StrategyPatterns so they can be tuned
without touching the decision order.
"""

from __future__ import annotations

import logging
import re
from functools import cached_property

from pydantic import BaseModel, Field

from chatmem.config import ChatMemConfig
from chatmem.models import MemoryStrategy

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s']+")
_WHITESPACE = re.compile(r"\s+")


class StrategyPatterns(BaseModel):
    """Keyword and phrase lists driving the selector."""

    greetings: list[str] = Field(
        default_factory=lambda: [
            "hi", "hello", "hey", "hiya", "howdy", "yo", "greetings", "sup",
            "good morning", "good afternoon", "good evening", "what's up", "whats up",
        ]
    )
    acknowledgments: list[str] = Field(
        default_factory=lambda: [
            "thanks", "thank you", "thanks a lot", "thank you so much", "thx", "ty",
            "much appreciated", "appreciate it", "ok", "okay", "k", "sure", "alright",
            "cool", "nice", "great", "perfect", "awesome", "got it", "sounds good",
            "yes", "yeah", "yep", "yup", "no", "nope", "nah", "yes please", "no thanks",
        ]
    )
    memory_references: list[str] = Field(
        default_factory=lambda: [
            "remember", "recall", "earlier", "before", "previous", "previously",
            "last time", "we discussed", "we talked", "you said", "you told me",
            "i told you", "i mentioned", "ago",
        ]
    )
    personal_info: list[str] = Field(
        default_factory=lambda: [
            "my name", "who am i", "my role", "my job", "what do i do", "where do i work",
            "about me", "my interests", "my preferences", "do you know me",
        ]
    )


def _alternation(phrases: list[str]) -> str:
    # Longest first so "thank you so much" wins over "thank you".
    ordered = sorted({p.strip().lower() for p in phrases if p.strip()}, key=len, reverse=True)
    return "|".join(re.escape(p) for p in ordered)


def normalize_query(text: str) -> str:
    """Lower-case, trim, drop punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


class StrategySelector:
    """Classifies a query into skip / profile-only / cached / full.

    Rules, first match wins:
        1. greeting -> profile-only early in a chat, skip later
        2. pure acknowledgment -> skip
        3. explicit memory reference -> full
        4. short personal-info question -> profile-only
        5. long query -> full
        6. default -> profile-only (cached when configured for established chats)
    """

    def __init__(self, config: ChatMemConfig | None = None, patterns: StrategyPatterns | None = None):
        self.config = config or ChatMemConfig()
        self.patterns = patterns or StrategyPatterns()

    @cached_property
    def _greeting_re(self) -> re.Pattern[str]:
        return re.compile(rf"^(?:{_alternation(self.patterns.greetings)})\b")

    @cached_property
    def _ack_re(self) -> re.Pattern[str]:
        ack = _alternation(self.patterns.acknowledgments)
        return re.compile(rf"^(?:{ack})(?: (?:{ack}))*$")

    @cached_property
    def _memory_re(self) -> re.Pattern[str]:
        return re.compile(rf"\b(?:{_alternation(self.patterns.memory_references)})\b")

    @cached_property
    def _personal_re(self) -> re.Pattern[str]:
        return re.compile(rf"\b(?:{_alternation(self.patterns.personal_info)})\b")

    def classify(self, query: str, turn_index: int = 0) -> tuple[MemoryStrategy, str]:
        """Return the strategy and the name of the rule that chose it."""
        raw = query.strip().lower()
        text = normalize_query(raw)
        is_short = len(raw) < self.config.short_query_chars

        # A greeting-prefixed message only counts as a greeting while it stays short.
        if text and self._greeting_re.match(text) and is_short:
            if turn_index <= self.config.greeting_profile_max_turn:
                return MemoryStrategy.PROFILE_ONLY, "greeting"
            return MemoryStrategy.SKIP, "greeting"

        if text and self._ack_re.match(text):
            return MemoryStrategy.SKIP, "acknowledgment"

        if self._memory_re.search(text):
            return MemoryStrategy.FULL, "memory_reference"

        if is_short and self._personal_re.search(text):
            return MemoryStrategy.PROFILE_ONLY, "personal_info"

        if not is_short:
            return MemoryStrategy.FULL, "long_query"

        if self.config.prefer_cached_context and turn_index >= self.config.cached_min_turn:
            return MemoryStrategy.CACHED, "default"
        return MemoryStrategy.PROFILE_ONLY, "default"

    def select(self, query: str, turn_index: int = 0) -> MemoryStrategy:
        strategy, rule = self.classify(query, turn_index)
        logger.debug(f"[STRATEGY] {strategy.value} ({rule}) for turn {turn_index}: \"{query[:50]}\"")
        return strategy


def select_strategy(query: str, turn_index: int = 0, config: ChatMemConfig | None = None) -> MemoryStrategy:
    """Convenience wrapper around StrategySelector.select with default patterns."""
    return StrategySelector(config).select(query, turn_index)
