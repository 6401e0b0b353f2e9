"""User profile extraction using an LLM.

Turns free conversation text into a small structured delta (name, role,
interests, preferences, background, style). The caller merges the delta
into the profile store; this module never touches stored profiles.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from chatmem.lib.json_parsing import parse_json_dict
from chatmem.models import ConversationTurn, ProfileDelta

if TYPE_CHECKING:
    from chatmem.llm.client import CompletionClient

logger = logging.getLogger(__name__)

PROFILE_SYSTEM_PROMPT = """You are a profile extraction assistant. Analyze the conversation and extract personal information about the USER (never about the assistant).

Look for:
1. Names: "my name is X", "I am X", "I'm X", "call me X"
2. Roles and work: "I work at/for X", "I'm a X", "my role is X"
3. Interests: "I like X", "I'm interested in X", "I enjoy X"
4. Preferences: how they want answers (short, detailed, examples, tone)
5. Communication style inferred from how they write

Examples:
- "my name is anoop kumar" -> name: "Anoop Kumar"
- "i work for nubevest" -> background: "Works at Nubevest"
- "I'm a software engineer" -> role: "Software Engineer"

Return ONLY a JSON object with this exact structure, using null for unknown fields:
{
  "name": "string or null",
  "role": "string or null",
  "interests": ["strings"] or null,
  "preferences": ["strings"] or null,
  "background": "string or null",
  "conversationStyle": "string or null"
}"""

_NULLISH = {"", "null", "none", "n/a", "unknown"}


def format_conversation(turns: list[ConversationTurn]) -> str:
    """Render turns as USER/ASSISTANT lines, oldest first."""
    lines = []
    for turn in turns:
        lines.append(f"USER: {turn.user_prompt}")
        lines.append(f"ASSISTANT: {turn.ai_response}")
    return "\n\n".join(lines)


def _clean_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return None if value.lower() in _NULLISH else value


def _clean_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    items = [s for s in (_clean_str(v) for v in value) if s]
    return items or None


def parse_profile_delta(response: str) -> ProfileDelta:
    """Parse an extraction response. Anything unparseable yields an empty delta."""
    data = parse_json_dict(response, fallback={})
    if not data:
        return ProfileDelta()

    return ProfileDelta(
        name=_clean_str(data.get("name")),
        role=_clean_str(data.get("role")),
        background=_clean_str(data.get("background")),
        interests=_clean_list(data.get("interests")),
        preferences=_clean_list(data.get("preferences")),
        conversation_style=_clean_str(
            data.get("conversationStyle", data.get("conversation_style"))
        ),
    )


async def extract_profile_delta(
    client: "CompletionClient",
    turns: list[ConversationTurn],
    model: str | None = None,
) -> ProfileDelta:
    """Extract a profile delta from the full turn history of a session.

    Raises:
        CollaboratorError: If the LLM call fails (caller decides how to degrade)
    """
    if not turns:
        return ProfileDelta()

    conversation = format_conversation(turns)
    logger.debug(f"[PROFILE] Extracting from {len(turns)} turns ({len(conversation)} chars)")

    response = await client.complete(
        prompt=f"CONVERSATION:\n{conversation}\n\nReturn the JSON object:",
        system=PROFILE_SYSTEM_PROMPT,
        max_tokens=500,
        temperature=0.1,
        model=model,
    )
    return parse_profile_delta(response)
