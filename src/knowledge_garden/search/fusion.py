"""Candidate deduplication, score fusion and ordering."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional

from knowledge_garden.search.recency import RECENCY_TAU_SECONDS, recency_score


@dataclass(frozen=True)
class SearchWeights:
    """Non-negative weights for the exact, similarity and recency signals."""

    exact_match: float = 5.0
    similarity: float = 2.0
    recency: float = 1.0

    @classmethod
    def clamped(
        cls,
        exact_match: Optional[float] = None,
        similarity: Optional[float] = None,
        recency: Optional[float] = None,
    ) -> "SearchWeights":
        """Build weights from optional caller values, defaulting missing ones and clamping at 0."""
        defaults = cls()

        def pick(value: Optional[float], default: float) -> float:
            return default if value is None else max(0.0, float(value))

        return cls(
            exact_match=pick(exact_match, defaults.exact_match),
            similarity=pick(similarity, defaults.similarity),
            recency=pick(recency, defaults.recency),
        )

    @property
    def has_positive(self) -> bool:
        return self.exact_match > 0 or self.similarity > 0 or self.recency > 0


@dataclass
class Candidate:
    """A pre-fusion hit produced by one source adapter pass."""

    source_kind: str
    source_id: str
    text: str = ""
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    exact_hit: bool = False
    lexical_similarity: float = 0.0
    vector_similarity: float = 0.0
    age_seconds: Optional[int] = None
    extra: dict = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return self.source_kind, self.source_id


@dataclass(frozen=True)
class ScoreBreakdown:
    exact: float
    similarity: float
    recency: float


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: float
    breakdown: ScoreBreakdown


def merge_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Deduplicate by (source_kind, source_id), keeping the max of every raw signal.

    Descriptive fields come from the first pass that supplied them. Output
    order follows first appearance.
    """
    merged: dict[tuple[str, str], Candidate] = {}
    for candidate in candidates:
        current = merged.get(candidate.key)
        if current is None:
            merged[candidate.key] = replace(candidate, extra=dict(candidate.extra))
            continue

        current.exact_hit = current.exact_hit or candidate.exact_hit
        current.lexical_similarity = max(current.lexical_similarity, candidate.lexical_similarity)
        current.vector_similarity = max(current.vector_similarity, candidate.vector_similarity)
        if candidate.age_seconds is not None:
            current.age_seconds = (
                candidate.age_seconds
                if current.age_seconds is None
                else min(current.age_seconds, candidate.age_seconds)
            )
        current.title = current.title or candidate.title
        current.text = current.text or candidate.text
        current.created_at = current.created_at or candidate.created_at
        current.updated_at = current.updated_at or candidate.updated_at
        for key, value in candidate.extra.items():
            current.extra.setdefault(key, value)
    return list(merged.values())


def fuse(
    candidate: Candidate,
    weights: SearchWeights,
    tau_seconds: float = RECENCY_TAU_SECONDS,
) -> ScoredCandidate:
    s_exact = 1.0 if candidate.exact_hit else 0.0
    s_sim = max(candidate.lexical_similarity, candidate.vector_similarity)
    s_rec = recency_score(candidate.age_seconds, tau_seconds)
    score = weights.exact_match * s_exact + weights.similarity * s_sim + weights.recency * s_rec
    return ScoredCandidate(
        candidate=candidate,
        score=score,
        breakdown=ScoreBreakdown(exact=s_exact, similarity=s_sim, recency=s_rec),
    )


def _sort_key(scored: ScoredCandidate) -> tuple:
    updated = scored.candidate.updated_at
    recency_key = -updated.timestamp() if updated is not None else float("inf")
    return (-scored.score, recency_key, scored.candidate.source_kind, scored.candidate.source_id)


def rank(
    candidates: Iterable[Candidate],
    weights: SearchWeights,
    limit: int,
    tau_seconds: float = RECENCY_TAU_SECONDS,
) -> list[ScoredCandidate]:
    """Merge, fuse and order candidates, returning at most limit results.

    Order: score descending, then most recent updated_at, then source_kind,
    then source_id. The result does not depend on input order.
    """
    scored = [fuse(c, weights, tau_seconds) for c in merge_candidates(candidates)]
    scored.sort(key=_sort_key)
    return scored[:limit]
