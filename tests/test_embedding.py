"""Tests for the OpenRouter embedding client (HTTP mocked)."""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from chatmem.embedding import OPENROUTER_EMBEDDINGS_URL, AsyncEmbeddingClient
from chatmem.errors import CollaboratorError


def _client_with(handler) -> AsyncEmbeddingClient:
    client = AsyncEmbeddingClient(api_key="test-key")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def _ok(request: httpx.Request) -> httpx.Response:
    texts = json.loads(request.content)["input"]
    # Return items out of order to exercise index mapping
    data = [{"index": i, "embedding": [float(i), 0.5]} for i in range(len(texts))]
    return httpx.Response(200, json={"data": list(reversed(data))})


class TestInit:
    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="OpenRouter API key required"):
            AsyncEmbeddingClient()

    @patch.dict(os.environ, {"OPENROUTER_API_KEY": "env-key", "CHATMEM_EMBEDDING_MODEL": "openai/text-embedding-3-large"})
    def test_reads_environment(self):
        client = AsyncEmbeddingClient()

        assert client.api_key == "env-key"
        assert client.model == "openai/text-embedding-3-large"


class TestEmbed:
    @pytest.mark.asyncio
    async def test_embed_single(self):
        seen = []

        def handler(request):
            seen.append(request)
            return _ok(request)

        client = _client_with(handler)
        vector = await client.embed("hello")

        assert vector == [0.0, 0.5]
        assert str(seen[0].url) == OPENROUTER_EMBEDDINGS_URL
        assert json.loads(seen[0].content)["model"] == client.model
        await client.close()

    @pytest.mark.asyncio
    async def test_embed_batch_keeps_order_and_batches(self):
        calls = []

        def handler(request):
            calls.append(len(json.loads(request.content)["input"]))
            return _ok(request)

        client = _client_with(handler)
        vectors = await client.embed_batch(["a", "b", "c", "d", "e"], batch_size=2)

        assert calls == [2, 2, 1]
        assert [v[0] for v in vectors] == [0.0, 1.0, 0.0, 1.0, 0.0]
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        client = AsyncEmbeddingClient(api_key="test-key")
        assert await client.embed_batch([]) == []

    @pytest.mark.asyncio
    async def test_dimensions_sent_when_set(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return _ok(request)

        client = _client_with(handler)
        client.dimensions = 512
        await client.embed("x")

        assert bodies[0]["dimensions"] == 512


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error(self):
        client = _client_with(lambda request: httpx.Response(503, text="overloaded"))

        with pytest.raises(CollaboratorError, match="API error 503") as exc_info:
            await client.embed("hello")
        assert exc_info.value.collaborator == "embedding"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client_with(handler)

        with pytest.raises(CollaboratorError, match="request failed"):
            await client.embed("hello")

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = _client_with(lambda request: httpx.Response(200, json={"unexpected": True}))

        with pytest.raises(CollaboratorError, match="invalid response"):
            await client.embed("hello")

    @pytest.mark.asyncio
    async def test_missing_embeddings(self):
        client = _client_with(lambda request: httpx.Response(200, json={"data": []}))

        with pytest.raises(CollaboratorError, match="missing embeddings"):
            await client.embed("hello")
