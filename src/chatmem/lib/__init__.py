"""chatmem shared utilities library.

Cross-cutting helpers used across the codebase:
- async_utils: background task spawning, collaborator timeouts, sync runner
- json_parsing: LLM response parsing with markdown code block handling
- tokens: tiktoken-based context budgets
"""

from chatmem.lib.async_utils import BackgroundTasks, run_async, with_timeout
from chatmem.lib.json_parsing import extract_json_from_response, parse_json_dict
from chatmem.lib.tokens import count_tokens, truncate_to_tokens

__all__ = [
    "BackgroundTasks",
    "run_async",
    "with_timeout",
    "extract_json_from_response",
    "parse_json_dict",
    "count_tokens",
    "truncate_to_tokens",
]
