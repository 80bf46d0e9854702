"""Unified search: fan out across source adapters, fuse signals, order results."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Optional, Sequence

from loguru import logger

from knowledge_garden.config import GardenConfig
from knowledge_garden.providers.embedding import EmbeddingProvider
from knowledge_garden.repository.source_adapters import AdapterQuery, Capability, SourceAdapter
from knowledge_garden.schemas.search import (
    ScoreBreakdownResponse,
    SignalScores,
    UnifiedSearchResult,
)
from knowledge_garden.search.fusion import (
    Candidate,
    ScoredCandidate,
    SearchWeights,
    merge_candidates,
    rank,
)
from knowledge_garden.search.normalize import normalize_query
from knowledge_garden.services.cancellation import join_tasks, raise_if_cancelled
from knowledge_garden.services.exceptions import ValidationError
from knowledge_garden.utils import utc_now

VECTOR_PROVIDER_KEY = "vector_provider"


@dataclass
class AdapterOutcome:
    kind: str
    candidates: list[Candidate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class SearchOutcome:
    """Ordered results plus the failures that made them partial."""

    results: list[ScoredCandidate]
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


def to_search_result(scored: ScoredCandidate) -> UnifiedSearchResult:
    candidate = scored.candidate
    return UnifiedSearchResult(
        source_kind=candidate.source_kind,
        source_id=candidate.source_id,
        title=candidate.title,
        text=candidate.text,
        created_at=candidate.created_at,
        updated_at=candidate.updated_at,
        score=scored.score,
        breakdown=ScoreBreakdownResponse(
            exact=scored.breakdown.exact,
            similarity=scored.breakdown.similarity,
            recency=scored.breakdown.recency,
        ),
        signals=SignalScores(
            exact_hit=candidate.exact_hit,
            lexical_similarity=candidate.lexical_similarity,
            vector_similarity=candidate.vector_similarity,
            age_seconds=candidate.age_seconds,
        ),
        metadata=candidate.extra,
    )


def _cap_contribution(candidates: list[Candidate], cap: int) -> list[Candidate]:
    if len(candidates) <= cap:
        return candidates
    ordered = sorted(
        candidates,
        key=lambda c: (
            not c.exact_hit,
            -max(c.lexical_similarity, c.vector_similarity),
            c.source_id,
        ),
    )
    return ordered[:cap]


class SearchService:
    """Unified ranker over every registered source adapter.

    Adapter failures never fail the request: they are recorded per adapter and
    the remaining candidates are still fused and returned.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        app_config: GardenConfig,
        embedding_provider: Optional[EmbeddingProvider] = None,
    ):
        self.adapters = list(adapters)
        self.app_config = app_config
        self.embedding_provider = embedding_provider

    def resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.app_config.search_limit_default
        if limit < 1:
            raise ValidationError("limit must be at least 1", field="limit")
        return min(limit, self.app_config.search_limit_max)

    async def search_all(
        self,
        query: str,
        weights: Optional[SearchWeights] = None,
        limit: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> SearchOutcome:
        """Search every source and return up to limit fused results.

        Args:
            query: Free text, required
            weights: Signal weights; defaults to 5/2/1
            limit: Result bound, clamped to the configured ceiling
            cancel: Set by the caller to abandon outstanding adapter work
            timeout: Caller deadline in seconds shared by all adapters
            now: Reference time for recency, defaults to the current time

        Raises:
            ValidationError: Empty query, limit below 1, or all weights zero
            OperationCancelledError: cancel fired before the join completed
        """
        if query is None or not query.strip():
            raise ValidationError("query is required", field="query")
        weights = weights or SearchWeights()
        if not weights.has_positive:
            raise ValidationError(
                "at least one search weight must be positive", field="weights"
            )
        limit = self.resolve_limit(limit)
        raise_if_cancelled(cancel, "Search")

        now = now or utc_now()
        normalized = normalize_query(query)
        errors: dict[str, str] = {}

        vector = await self._query_vector(query.strip(), weights, cancel, timeout, errors)

        request = AdapterQuery(
            query=normalized,
            now=now,
            strategy=self.app_config.default_search_strategy,
            vector=vector,
            fuzzy_threshold=self.app_config.search_fuzzy_threshold,
            top_k=self.app_config.search_vector_top_k,
            cap=self.app_config.search_adapter_cap,
            fuzzy_scan_limit=self.app_config.search_fuzzy_scan_limit,
        )

        semaphore = asyncio.Semaphore(self.app_config.sync_fanout)
        tasks = [
            asyncio.create_task(self._run_adapter(adapter, request, semaphore))
            for adapter in self.adapters
        ]
        timed_out = await join_tasks(tasks, cancel, timeout, "Search")

        candidates: list[Candidate] = []
        # Collect in adapter registration order so completion order never leaks into output
        for adapter, task in zip(self.adapters, tasks):
            if task in timed_out or task.cancelled():
                errors[adapter.kind] = "deadline exceeded"
                continue
            outcome = task.result()
            if outcome.errors:
                errors[adapter.kind] = "; ".join(outcome.errors)
            candidates.extend(outcome.candidates)

        results = rank(candidates, weights, limit)
        logger.info(
            f"Unified search: query={query!r} candidates={len(candidates)} "
            f"results={len(results)} partial={bool(errors)}"
        )
        return SearchOutcome(results=results, errors=errors)

    async def _query_vector(
        self,
        text: str,
        weights: SearchWeights,
        cancel: Optional[asyncio.Event],
        timeout: Optional[float],
        errors: dict[str, str],
    ) -> Optional[list[float]]:
        if weights.similarity <= 0 or self.embedding_provider is None:
            return None
        if not any(Capability.VECTOR_QUERY in a.capabilities for a in self.adapters):
            return None

        task = asyncio.create_task(
            self.embedding_provider.embed(text, self.app_config.default_search_strategy)
        )
        timed_out = await join_tasks([task], cancel, timeout, "Search")
        if timed_out or task.cancelled():
            errors[VECTOR_PROVIDER_KEY] = "deadline exceeded"
            return None
        try:
            return task.result()
        except Exception as e:
            # Lexical passes still run
            logger.warning(f"Embedding provider unavailable, searching lexically only: {e}")
            errors[VECTOR_PROVIDER_KEY] = str(e) or e.__class__.__name__
            return None

    async def _run_adapter(
        self,
        adapter: SourceAdapter,
        request: AdapterQuery,
        semaphore: asyncio.Semaphore,
    ) -> AdapterOutcome:
        outcome = AdapterOutcome(kind=adapter.kind)
        capabilities = adapter.capabilities

        passes: list[tuple[str, Awaitable[list[Candidate]]]] = []
        if Capability.EXACT_MATCH in capabilities:
            passes.append(("exact", adapter.exact(request)))
        if Capability.FUZZY_MATCH in capabilities:
            passes.append(("fuzzy", adapter.fuzzy(request)))
        if Capability.VECTOR_QUERY in capabilities and request.vector is not None:
            passes.append(("vector", self._bounded_vector_pass(adapter, request)))

        async with semaphore:
            results: list[Any] = await asyncio.gather(
                *(coro for _, coro in passes), return_exceptions=True
            )

        candidates: list[Candidate] = []
        for (name, _), result in zip(passes, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    f"Search adapter pass failed: kind={adapter.kind} pass={name} error={result}"
                )
                outcome.errors.append(f"{name}: {result}")
                continue
            candidates.extend(result)

        outcome.candidates = _cap_contribution(
            merge_candidates(candidates), self.app_config.search_adapter_cap
        )
        return outcome

    async def _bounded_vector_pass(
        self, adapter: SourceAdapter, request: AdapterQuery
    ) -> list[Candidate]:
        budget = self.app_config.search_vector_budget_ms / 1000
        try:
            return await asyncio.wait_for(adapter.vector(request), timeout=budget)
        except TimeoutError as e:
            raise TimeoutError(
                f"vector pass skipped after {self.app_config.search_vector_budget_ms}ms"
            ) from e
