"""Pure scoring functions shared by the search adapters and the unified ranker."""

from knowledge_garden.search.fusion import Candidate, SearchWeights, fuse, merge_candidates, rank
from knowledge_garden.search.lexical import fuzzy_similarity, substring_hit
from knowledge_garden.search.normalize import NormalizedQuery, normalize_query, normalize_text
from knowledge_garden.search.recency import RECENCY_TAU_SECONDS, recency_score

__all__ = [
    "Candidate",
    "NormalizedQuery",
    "RECENCY_TAU_SECONDS",
    "SearchWeights",
    "fuse",
    "fuzzy_similarity",
    "merge_candidates",
    "normalize_query",
    "normalize_text",
    "rank",
    "recency_score",
    "substring_hit",
]
