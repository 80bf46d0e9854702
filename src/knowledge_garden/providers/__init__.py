"""HTTP clients for the external embedding and LLM services."""

from knowledge_garden.providers.embedding import EmbeddingProvider, OllamaEmbeddingProvider
from knowledge_garden.providers.llm import LLMProvider, OllamaLLMProvider

__all__ = [
    "EmbeddingProvider",
    "LLMProvider",
    "OllamaEmbeddingProvider",
    "OllamaLLMProvider",
]
