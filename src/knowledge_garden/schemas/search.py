"""Search schemas for the unified ranker and the advanced-search orchestrator."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class SignalScores(BaseModel):
    """Raw per-signal values after deduplication."""

    exact_hit: bool
    lexical_similarity: float
    vector_similarity: float
    age_seconds: Optional[int] = None


class ScoreBreakdownResponse(BaseModel):
    """Weighted contribution inputs: s_exact, s_sim and s_rec."""

    exact: float
    similarity: float
    recency: float


class UnifiedSearchResult(BaseModel):
    source_kind: str
    source_id: str
    title: Optional[str] = None
    text: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    score: float
    breakdown: ScoreBreakdownResponse
    signals: SignalScores
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdvancedSearchRequest(BaseModel):
    """Free text, or a structured object that is stringified to JSON."""

    query: Union[str, Dict[str, Any], List[Any]]


class Citation(BaseModel):
    bookmark_id: str
    title: Optional[str] = None
    url: Optional[str] = None
    score: float


class AdvancedSearchResponse(BaseModel):
    answer: str
    citations: List[Citation]
    used_context_chars: int
