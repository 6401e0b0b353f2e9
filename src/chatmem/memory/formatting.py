"""Rendering and matching helpers for memory context blocks."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from chatmem.models import ConversationTurn, SessionSummary, VectorMatch, _utcnow

SECTION_SEPARATOR = "\n\n" + "=" * 50 + "\n\n"
SUMMARY_PREVIEW_CHARS = 300

_WORD = re.compile(r"[a-z0-9][a-z0-9'_-]*")

# Words that carry no topical signal, including the memory-reference vocabulary
# itself ("remember what we discussed about X" should match on X only).
STOPWORDS = frozenset(
    """
    about above after again also been before being could didn does doing done
    each earlier from have having here into just know like made make many more
    most much must other over please previous previously really recall remember
    said same should some such talk talked tell than that their them then there
    these they thing things think this those told very want wanted were what
    when where which while will with would your yours discussed mentioned
    """.split()
)


def significant_terms(text: str) -> set[str]:
    """Lower-cased words of four or more characters, minus stopwords."""
    return {w for w in _WORD.findall(text.lower()) if len(w) >= 4 and w not in STOPWORDS}


def turn_matches(turn: ConversationTurn, terms: set[str]) -> bool:
    if not terms:
        return False
    return bool(terms & significant_terms(f"{turn.user_prompt} {turn.ai_response}"))


def format_time_ago(timestamp: datetime | str | None, now: datetime | None = None) -> str:
    """Human readable relative time: just now, 5m ago, 3h ago, 2d ago, or a date."""
    if timestamp is None:
        return "unknown"
    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp)
        except ValueError:
            return "unknown"
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)

    now = now or _utcnow()
    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 24 * 60:
        return f"{minutes // 60}h ago"
    if minutes < 7 * 24 * 60:
        return f"{minutes // (24 * 60)}d ago"
    return timestamp.strftime("%Y-%m-%d")


def render_turns(turns: list[ConversationTurn], now: datetime | None = None) -> str:
    lines = []
    for i, turn in enumerate(turns, 1):
        entry = f"{i}. [{format_time_ago(turn.timestamp, now)}] User: {turn.user_prompt}\n   AI: {turn.ai_response}"
        if turn.attachment:
            entry += f"\n   Image: {turn.attachment.prompt or turn.attachment.url}"
        lines.append(entry)
    return "\n\n".join(lines)


def render_summaries(summaries: list[SessionSummary], now: datetime | None = None) -> str:
    lines = []
    for i, summary in enumerate(summaries, 1):
        text = summary.summary
        if len(text) > SUMMARY_PREVIEW_CHARS:
            text = text[:SUMMARY_PREVIEW_CHARS] + "..."
        lines.append(f"{i}. [{format_time_ago(summary.created_at, now)}] {text}")
    return "\n\n".join(lines)


def render_matches(matches: list[VectorMatch], now: datetime | None = None) -> str:
    lines = []
    for i, match in enumerate(matches, 1):
        when = format_time_ago(match.metadata.get("timestamp"), now)
        lines.append(f"{i}. [{when}, {match.score * 100:.1f}% match] {match.content}")
    return "\n\n".join(lines)
