"""JSON parsing for LLM responses.

LLM output often wraps JSON in markdown fences or surrounds it with prose.
These helpers strip that and fall back to a caller-supplied value on failure.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)(?:```|$)")
_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_from_response(response: str) -> str:
    """Return the JSON-looking part of an LLM response.

    Example:
        >>> extract_json_from_response('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> extract_json_from_response('Sure! {"a": 1} Hope that helps.')
        '{"a": 1}'
    """
    response = response.strip()

    if "```" in response:
        match = _FENCED.search(response)
        if match and match.group(1).strip():
            response = match.group(1).strip()

    if not response.startswith(("{", "[")):
        match = _OBJECT.search(response)
        if match:
            return match.group(0)

    return response


def parse_json_dict(
    response: str,
    *,
    fallback: dict | None = None,
    log_errors: bool = True,
) -> dict[str, Any]:
    """Parse an LLM response as a JSON object.

    Example:
        >>> parse_json_dict('{"name": "Sam"}')
        {'name': 'Sam'}
        >>> parse_json_dict('not json', fallback={})
        {}
    """
    fallback = fallback if fallback is not None else {}
    if not response:
        return fallback

    cleaned = extract_json_from_response(response)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        if log_errors:
            logger.warning(f"JSON parse failed: {e}. Response: {response[:200]}")
        return fallback

    if not isinstance(data, dict):
        if log_errors:
            logger.warning(f"Expected JSON object, got {type(data).__name__}: {cleaned[:100]}")
        return fallback
    return data
