"""Advanced search: answer a question from the bookmark corpus with citations."""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from knowledge_garden.config import GardenConfig
from knowledge_garden.providers.embedding import EmbeddingProvider
from knowledge_garden.providers.llm import LLMProvider
from knowledge_garden.repository.configuration_repository import ConfigurationRepository
from knowledge_garden.repository.source_adapters import SourceAdapter
from knowledge_garden.repository.vector_index import VectorIndex
from knowledge_garden.schemas.search import AdvancedSearchResponse, Citation
from knowledge_garden.services.cancellation import join_tasks, raise_if_cancelled
from knowledge_garden.services.exceptions import (
    GardenError,
    LLMUnavailableError,
    UpstreamUnavailableError,
    ValidationError,
)
from knowledge_garden.utils import utc_now

ADVANCED_SEARCH_STRATEGY = "qa-v2-passage"
PROMPT_TEMPLATE_KEY = "search.prompt.template"
THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
CONTEXT_SEPARATOR = "\n\n"
PLACEHOLDER = re.compile(r"\{(query|context)\}")

DEFAULT_PROMPT_TEMPLATE = """System: You are a helpful assistant answering the user's questions from the \
provided context. The context is a set of bookmarks saved by the user, each with a title, a URL and a \
summary of the source article.
When an article from the context is relevant, cite it with a markdown link in the format [title](url).
If a context article is not relevant, ignore it.
When you need to refer to "the context", say "the bookmarks database" instead, for example: \
"In the bookmarks database there is an article related to..."

Context:
{context}

User question: {query}

Answer the user's question relying as much as possible on the provided context. If the context \
does not contain relevant information, say so."""


@dataclass
class ContextItem:
    bookmark_id: str
    title: Optional[str]
    url: Optional[str]
    summary: Optional[str]
    score: float

    def render(self) -> str:
        return f"Title: {self.title or ''}\nUrl: {self.url or ''}\nSummary: {self.summary or ''}"


def query_to_text(query: Any) -> str:
    """Free text passes through; structured queries are stringified to JSON."""
    if isinstance(query, str):
        text = query.strip()
    else:
        text = json.dumps(query, ensure_ascii=False, sort_keys=True)
    if not text or text in ("{}", "[]", "null"):
        raise ValidationError("query is required", field="query")
    return text


def fit_context(items: list[ContextItem], budget: int) -> tuple[list[ContextItem], str]:
    """Render items into a context block of at most budget characters.

    Lowest-scored items are dropped first. If the best item alone is still
    over budget its block is cut to fit.
    """
    kept = sorted(items, key=lambda item: (-item.score, item.bookmark_id))
    while kept:
        context = CONTEXT_SEPARATOR.join(item.render() for item in kept)
        if len(context) <= budget:
            return kept, context
        if len(kept) == 1:
            return kept, context[:budget]
        kept = kept[:-1]
    return [], ""


def render_prompt(template: str, query: str, context: str) -> str:
    """Fill {query} and {context} in one pass so neither value is re-expanded."""
    values = {"query": query, "context": context}
    return PLACEHOLDER.sub(lambda match: values[match.group(1)], template)


def strip_think_block(answer: str) -> str:
    return THINK_BLOCK.sub("", answer).strip()


class AdvancedSearchService:
    """Vector top-K over bookmarks, context assembly, LLM synthesis.

    Unlike the unified ranker this does not degrade: a missing or failing
    provider is reported as an error.
    """

    def __init__(
        self,
        bookmark_adapter: SourceAdapter,
        vector_index: VectorIndex,
        configuration_repository: ConfigurationRepository,
        app_config: GardenConfig,
        embedding_provider: Optional[EmbeddingProvider] = None,
        llm_provider: Optional[LLMProvider] = None,
    ):
        self.bookmark_adapter = bookmark_adapter
        self.vector_index = vector_index
        self.configuration_repository = configuration_repository
        self.app_config = app_config
        self.embedding_provider = embedding_provider
        self.llm_provider = llm_provider

    async def advanced_search(
        self, query: Any, cancel: Optional[asyncio.Event] = None
    ) -> AdvancedSearchResponse:
        text = query_to_text(query)
        if self.embedding_provider is None:
            raise UpstreamUnavailableError("No vector provider is configured")
        if self.llm_provider is None:
            raise LLMUnavailableError("No LLM provider is configured")
        raise_if_cancelled(cancel, "Advanced search")

        vector = await self.embedding_provider.embed(text, ADVANCED_SEARCH_STRATEGY)
        hits = await self.vector_index.query(
            "bookmark", ADVANCED_SEARCH_STRATEGY, vector, self.app_config.advanced_search_top_k
        )
        found = await self.bookmark_adapter.lookup([h.source_id for h in hits], utc_now())
        bookmarks = {c.source_id: c for c in found}
        items = [
            ContextItem(
                bookmark_id=hit.source_id,
                title=bookmarks[hit.source_id].title,
                url=bookmarks[hit.source_id].extra.get("url"),
                summary=bookmarks[hit.source_id].extra.get("summary"),
                score=hit.similarity,
            )
            for hit in hits
            if hit.source_id in bookmarks
        ]

        kept, context = fit_context(items, self.app_config.advanced_search_context_chars)
        template = await self.configuration_repository.get_value(PROMPT_TEMPLATE_KEY)
        prompt = render_prompt(template or DEFAULT_PROMPT_TEMPLATE, text, context)
        raise_if_cancelled(cancel, "Advanced search")

        answer = await self._call_llm(prompt, cancel)
        logger.info(
            f"Advanced search: query={text!r} retrieved={len(items)} cited={len(kept)} "
            f"context_chars={len(context)}"
        )
        return AdvancedSearchResponse(
            answer=strip_think_block(answer),
            citations=[
                Citation(
                    bookmark_id=item.bookmark_id, title=item.title, url=item.url, score=item.score
                )
                for item in kept
            ],
            used_context_chars=len(context),
        )

    async def _call_llm(self, prompt: str, cancel: Optional[asyncio.Event]) -> str:
        assert self.llm_provider is not None
        deadline = self.app_config.llm_timeout_seconds
        task = asyncio.create_task(self.llm_provider.generate(prompt))
        timed_out = await join_tasks([task], cancel, deadline, "Advanced search")
        if timed_out or task.cancelled():
            raise LLMUnavailableError(f"LLM did not answer within {deadline:g}s")
        try:
            return task.result()
        except GardenError:
            raise
        except Exception as e:
            raise LLMUnavailableError(f"LLM call failed: {e}") from e
