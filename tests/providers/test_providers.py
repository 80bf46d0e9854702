"""Tests for the embedding and LLM HTTP clients."""

import json

import httpx
import pytest

from knowledge_garden.providers.embedding import (
    OllamaEmbeddingProvider,
    average_vectors,
    split_into_chunks,
)
from knowledge_garden.providers.llm import OllamaLLMProvider
from knowledge_garden.services.exceptions import EmbeddingProviderError, LLMUnavailableError


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))


def test_split_into_chunks():
    assert split_into_chunks("  short text ") == ["short text"]
    assert split_into_chunks("   ") == []

    chunks = split_into_chunks("One two. Three four. Five six.", max_chars=12)
    assert chunks == ["One two.", "Three four.", "Five six."]

    hard_cut = split_into_chunks("x" * 25, max_chars=10)
    assert hard_cut == ["x" * 10, "x" * 10, "x" * 5]


def test_average_vectors():
    assert average_vectors([[1.0, 2.0]]) == [1.0, 2.0]
    assert average_vectors([[1.0, 0.0], [0.0, 1.0]]) == [0.5, 0.5]


@pytest.mark.asyncio
async def test_embed_posts_model_and_prompt():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        assert request.url.path == "/api/embeddings"
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

    provider = OllamaEmbeddingProvider("http://ollama.test", "nomic", client=mock_client(handler))
    vector = await provider.embed("raft consensus", "qa-v2-passage")
    await provider.aclose()

    assert vector == [0.1, 0.2, 0.3]
    assert requests == [{"model": "nomic", "prompt": "raft consensus"}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"embedding": []}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_embed_failures_raise_provider_error(response):
    provider = OllamaEmbeddingProvider(
        "http://ollama.test", client=mock_client(lambda request: response)
    )
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("raft", "qa")


@pytest.mark.asyncio
async def test_embed_rejects_empty_text():
    provider = OllamaEmbeddingProvider(
        "http://ollama.test", client=mock_client(lambda request: httpx.Response(200))
    )
    with pytest.raises(EmbeddingProviderError):
        await provider.embed("  ", "qa")


@pytest.mark.asyncio
async def test_generate_returns_response_text():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/api/generate"
        assert body == {"model": "llama", "prompt": "Q?", "stream": False}
        return httpx.Response(200, json={"response": "A."})

    provider = OllamaLLMProvider("http://ollama.test", "llama", client=mock_client(handler))
    assert await provider.generate("Q?") == "A."


@pytest.mark.asyncio
async def test_generate_failures_raise_llm_unavailable():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = OllamaLLMProvider("http://ollama.test", "llama", client=mock_client(refuse))
    with pytest.raises(LLMUnavailableError):
        await provider.generate("Q?")

    missing = OllamaLLMProvider(
        "http://ollama.test",
        "llama",
        client=mock_client(lambda request: httpx.Response(200, json={"done": True})),
    )
    with pytest.raises(LLMUnavailableError):
        await missing.generate("Q?")
