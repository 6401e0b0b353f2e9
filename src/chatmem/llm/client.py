"""OpenRouter completion client for chatmem.

Short free-text completions used by the profile extractor and the session
summarizer. Talks to OpenRouter through the OpenAI SDK.
"""

import logging
import os

from openai import AsyncOpenAI, OpenAIError

from chatmem.errors import CollaboratorError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

OPENROUTER_MODELS = {
    "default": "openai/gpt-4o-mini",
    "fast": "openai/gpt-4o-mini",
    "smart": "anthropic/claude-sonnet-4",
    "gpt-4o-mini": "openai/gpt-4o-mini",
    "gpt-4o": "openai/gpt-4o",
    "gemini-2.5-flash": "google/gemini-2.5-flash",
    "gemini-2.5-pro": "google/gemini-2.5-pro",
}


class CompletionClient:
    """Async OpenRouter LLM client.

    Example:
        client = CompletionClient()
        text = await client.complete("Extract the user's name from: ...")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        site_name: str | None = None,
    ):
        """Initialize the completion client.

        Args:
            api_key: OpenRouter API key. Defaults to OPENROUTER_API_KEY env var.
            model: Model name, either an alias from OPENROUTER_MODELS or provider/model.
            site_name: Attribution name for the OpenRouter dashboard.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.model = self._resolve_model(model or os.getenv("CHATMEM_LLM_MODEL"))
        self.site_name = site_name or os.getenv("CHATMEM_OPENROUTER_SITE_NAME", "chatmem")

        self._client = AsyncOpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=self.api_key,
            default_headers={"X-Title": self.site_name},
        )

    def _resolve_model(self, model: str | None) -> str:
        """Resolve a model name to OpenRouter format (provider/model)."""
        if model is None:
            return OPENROUTER_MODELS["default"]
        if "/" in model:
            return model
        return OPENROUTER_MODELS.get(model, model)

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        model: str | None = None,
    ) -> str:
        """Generate a completion.

        Returns:
            Generated text, or an empty string when the model returned nothing

        Raises:
            CollaboratorError: If the API call fails
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self._resolve_model(model) if model else self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as e:
            logger.error(f"[LLM] Completion failed: {e}")
            raise CollaboratorError("llm", str(e)) from e

        content = response.choices[0].message.content
        if not content:
            logger.warning(
                f"[LLM] Empty response from {getattr(response, 'model', 'unknown')}: "
                f"finish_reason={response.choices[0].finish_reason}"
            )
        return content or ""


# Module-level client (lazy initialization)
_client: CompletionClient | None = None


def get_client() -> CompletionClient:
    """Get the shared completion client.

    Raises:
        ValueError: If OPENROUTER_API_KEY is not set
    """
    global _client
    if _client is None:
        _client = CompletionClient()
    return _client
