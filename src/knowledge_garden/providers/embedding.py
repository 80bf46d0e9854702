"""Embedding provider interface and an Ollama-compatible HTTP implementation."""

import re
from typing import Optional, Protocol

import httpx
from loguru import logger

from knowledge_garden.services.exceptions import EmbeddingProviderError

MAX_CHUNK_CHARS = 8000
DEFAULT_TIMEOUT = 30.0
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


class EmbeddingProvider(Protocol):
    """Maps text to a fixed-width vector under a named strategy."""

    async def embed(self, text: str, strategy: str) -> list[float]: ...


def split_into_chunks(text: str, max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """Split text on sentence boundaries into pieces of at most max_chars.

    A single sentence longer than max_chars is hard-cut.
    """
    text = text.strip()
    if len(text) <= max_chars:
        return [text] if text else []

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(text):
        while len(sentence) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def average_vectors(vectors: list[list[float]]) -> list[float]:
    if len(vectors) == 1:
        return vectors[0]
    width = len(vectors[0])
    return [sum(vector[i] for vector in vectors) / len(vectors) for i in range(width)]


class OllamaEmbeddingProvider:
    """POST {base_url}/api/embeddings with {model, prompt}.

    The same model serves every strategy; strategy only selects which vector
    index the caller compares against.
    """

    def __init__(
        self,
        base_url: str,
        model: str = "nomic-embed-text:latest",
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def embed(self, text: str, strategy: str) -> list[float]:
        chunks = split_into_chunks(text)
        if not chunks:
            raise EmbeddingProviderError("Cannot embed empty text")

        vectors = [await self._embed_chunk(chunk) for chunk in chunks]
        logger.debug(
            f"Embedded text: strategy={strategy} chunks={len(chunks)} dims={len(vectors[0])}"
        )
        return average_vectors(vectors)

    async def _embed_chunk(self, chunk: str) -> list[float]:
        try:
            response = await self._client.post(
                "/api/embeddings", json={"model": self.model, "prompt": chunk}
            )
            response.raise_for_status()
            embedding = response.json().get("embedding")
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingProviderError(f"Embedding provider request failed: {e}") from e

        if not embedding:
            raise EmbeddingProviderError("Embedding provider returned no embedding")
        return [float(x) for x in embedding]

    async def aclose(self) -> None:
        await self._client.aclose()
