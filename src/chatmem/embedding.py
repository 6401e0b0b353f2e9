"""Embedding client for chatmem.

Turns text into fixed-length vectors through the OpenRouter embeddings API
(OpenAI-compatible request/response format).

Environment Variables:
    OPENROUTER_API_KEY: Required for OpenRouter API calls.
    CHATMEM_EMBEDDING_MODEL: Override default model (optional).
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import httpx

from chatmem.errors import CollaboratorError

logger = logging.getLogger(__name__)

OPENROUTER_EMBEDDINGS_URL = "https://openrouter.ai/api/v1/embeddings"

# Default embedding model (1536 dimensions)
DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-small"
DEFAULT_EMBEDDING_DIM = 1536


class AsyncEmbeddingClient:
    """Async client for generating embeddings via OpenRouter API.

    Example:
        async with AsyncEmbeddingClient() as client:
            vector = await client.embed("Hello, world!")
            vectors = await client.embed_batch(["first", "second"])
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the async embedding client.

        Args:
            api_key: OpenRouter API key. Defaults to OPENROUTER_API_KEY env var.
            model: Embedding model in OpenRouter format.
            dimensions: Output dimensions (optional, model-dependent).
            timeout: HTTP timeout in seconds.
        """
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenRouter API key required. Set OPENROUTER_API_KEY environment variable "
                "or pass api_key parameter."
            )

        self.model = model or os.getenv("CHATMEM_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        self.dimensions = dimensions
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "chatmem",
                },
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        For multiple texts, prefer embed_batch() which makes one request.
        """
        start_time = time.time()
        result = await self._call_api([text])
        logger.debug(f"[EMBEDDING] Single embed in {time.time() - start_time:.2f}s")
        return result[0]

    async def embed_batch(
        self,
        texts: list[str],
        batch_size: int = 100,
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed
            batch_size: Maximum texts per API call

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        start_time = time.time()
        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            all_embeddings.extend(await self._call_api(batch))

        elapsed = time.time() - start_time
        logger.info(f"[EMBEDDING] Batch embedded {len(texts)} texts in {elapsed:.2f}s")
        return all_embeddings

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        """Make async API call to the embeddings endpoint.

        Raises:
            CollaboratorError: If the API call fails or the response is malformed
        """
        client = await self._get_client()

        payload: dict[str, Any] = {
            "model": self.model,
            "input": texts,
        }
        if self.dimensions:
            payload["dimensions"] = self.dimensions

        try:
            response = await client.post(OPENROUTER_EMBEDDINGS_URL, json=payload)
            response.raise_for_status()
            data = response.json()

            # OpenAI format: {"data": [{"embedding": [...], "index": 0}, ...]}
            embeddings: list[list[float] | None] = [None] * len(texts)
            for item in data["data"]:
                embeddings[item["index"]] = item["embedding"]

            if None in embeddings:
                raise CollaboratorError("embedding", "missing embeddings in API response")

            return embeddings  # type: ignore[return-value]

        except httpx.HTTPStatusError as e:
            logger.error(f"Embedding API error: {e.response.status_code} - {e.response.text}")
            raise CollaboratorError("embedding", f"API error {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request failed: {e}")
            raise CollaboratorError("embedding", f"request failed: {e}") from e
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Invalid embedding response: {e}")
            raise CollaboratorError("embedding", f"invalid response: {e}") from e

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AsyncEmbeddingClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
