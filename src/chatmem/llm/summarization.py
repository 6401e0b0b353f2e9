"""Session summarization and topic extraction using an LLM."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chatmem.errors import CollaboratorError
from chatmem.models import ConversationTurn

if TYPE_CHECKING:
    from chatmem.llm.client import CompletionClient

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = """You summarize chat sessions for an assistant's long-term memory. The summary is recalled in FUTURE conversations with the same user.

Cover, in a few short paragraphs:
1. The main topics discussed
2. Information the user shared about themselves
3. Preferences or requirements they stated
4. Technical details or specific requests
5. The overall purpose of the conversation

Preserve names, numbers and decisions exactly. Write plain prose, no markdown headings."""

TOPIC_SYSTEM_PROMPT = """Extract 3-5 key topics that describe what this conversation was about.
Return ONLY a comma-separated list of lowercase, hyphenated topics.
Examples: programming, web-development, project-planning, data-analysis, ui-design"""

TOPIC_KEYWORDS: dict[str, list[str]] = {
    "programming": ["code", "programming", "javascript", "python", "typescript", "function", "api", "algorithm"],
    "ai-development": ["ai", "model", "embedding", "memory", "chatbot", "machine-learning", "neural"],
    "web-development": ["react", "html", "css", "website", "frontend", "backend", "server", "framework"],
    "project-work": ["project", "build", "develop", "implement", "feature", "planning", "architecture"],
    "learning": ["learn", "understand", "explain", "tutorial", "concept", "theory"],
    "debugging": ["error", "bug", "fix", "debug", "problem", "issue", "exception", "crash"],
    "data-analysis": ["data", "analysis", "database", "query", "analytics", "visualization", "metrics"],
    "ui-design": ["design", "ui", "ux", "interface", "layout", "component", "styling"],
    "deployment": ["deploy", "deployment", "production", "hosting", "cloud", "docker", "container"],
    "documentation": ["documentation", "docs", "readme", "guide", "manual", "specification"],
}


def conversation_text(turns: list[ConversationTurn]) -> str:
    return "\n\n".join(f"User: {t.user_prompt}\nAI: {t.ai_response}" for t in turns)


def keyword_topics(text: str) -> list[str]:
    """Keyword-based topic detection, used when the LLM is unavailable."""
    words = set(text.lower().replace(",", " ").replace(".", " ").split())
    topics = [
        topic for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in words for keyword in keywords)
    ]
    return topics or ["general"]


async def summarize_session(
    client: "CompletionClient",
    turns: list[ConversationTurn],
    model: str | None = None,
) -> str | None:
    """Summarize a session's turns. Returns None if the model produced nothing.

    Raises:
        CollaboratorError: If the LLM call fails
    """
    if not turns:
        return None

    summary = await client.complete(
        prompt=f"Conversation:\n{conversation_text(turns)}",
        system=SUMMARY_SYSTEM_PROMPT,
        max_tokens=800,
        temperature=0.3,
        model=model,
    )
    summary = summary.strip()
    return summary or None


async def extract_key_topics(
    client: "CompletionClient | None",
    text: str,
    max_topics: int = 5,
) -> list[str]:
    """Extract key topics with the LLM, falling back to keyword detection."""
    if client is not None:
        try:
            response = await client.complete(
                prompt=f"Conversation:\n{text}\n\nTopics:",
                system=TOPIC_SYSTEM_PROMPT,
                max_tokens=60,
                temperature=0.1,
            )
            topics = [
                t.strip().lower() for t in response.split(",")
                if 2 < len(t.strip()) < 30
            ][:max_topics]
            if topics:
                return topics
        except CollaboratorError as e:
            logger.warning(f"[SUMMARY] Topic extraction failed, using keywords: {e}")

    return keyword_topics(text)[:max_topics]
