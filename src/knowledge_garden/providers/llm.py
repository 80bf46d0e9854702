"""LLM provider interface and an Ollama-compatible HTTP implementation."""

from typing import Optional, Protocol

import httpx
from loguru import logger

from knowledge_garden.services.exceptions import LLMUnavailableError

DEFAULT_TIMEOUT = 60.0


class LLMProvider(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OllamaLLMProvider:
    """POST {base_url}/api/generate with {model, prompt, stream: false}."""

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def generate(self, prompt: str) -> str:
        try:
            response = await self._client.post(
                "/api/generate",
                json={"model": self.model, "prompt": prompt, "stream": False},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LLMUnavailableError(f"LLM request failed: {e}") from e

        answer = data.get("response")
        if answer is None:
            raise LLMUnavailableError("LLM response did not contain an answer")
        logger.debug(f"LLM call completed: model={self.model} chars={len(answer)}")
        return answer

    async def aclose(self) -> None:
        await self._client.aclose()
