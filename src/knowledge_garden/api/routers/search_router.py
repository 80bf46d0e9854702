"""Router for unified and advanced search."""

import json
from typing import List, Optional

from fastapi import APIRouter, Query, Response

from knowledge_garden.deps import AdvancedSearchServiceDep, SearchServiceDep
from knowledge_garden.schemas.search import (
    AdvancedSearchRequest,
    AdvancedSearchResponse,
    UnifiedSearchResult,
)
from knowledge_garden.search.fusion import SearchWeights
from knowledge_garden.services.search_service import to_search_result

router = APIRouter(prefix="/api/search", tags=["search"])

PARTIAL_HEADER = "X-Search-Partial"
ERRORS_HEADER = "X-Search-Errors"


@router.get("", response_model=List[UnifiedSearchResult])
async def search(
    response: Response,
    search_service: SearchServiceDep,
    query: Optional[str] = Query(None, description="Free-text query"),
    q: Optional[str] = Query(None, description="Legacy alias for query"),
    limit: Optional[int] = Query(None, description="Maximum number of results"),
    exact_match_weight: Optional[float] = Query(None),
    similarity_weight: Optional[float] = Query(None),
    levenshtein_weight: Optional[float] = Query(
        None, alias="levenshteinWeight", description="Legacy alias for similarity_weight"
    ),
    recency_weight: Optional[float] = Query(None),
) -> List[UnifiedSearchResult]:
    """Search every source and return fused, ordered results.

    Legacy spellings win when both forms are given. When some source failed
    the response still succeeds and carries X-Search-Partial and X-Search-Errors.
    """
    weights = SearchWeights.clamped(
        exact_match=exact_match_weight,
        similarity=levenshtein_weight if levenshtein_weight is not None else similarity_weight,
        recency=recency_weight,
    )
    outcome = await search_service.search_all(
        q if q is not None else query or "", weights=weights, limit=limit
    )
    if outcome.partial:
        response.headers[PARTIAL_HEADER] = "true"
        response.headers[ERRORS_HEADER] = json.dumps(outcome.errors, sort_keys=True)
    return [to_search_result(scored) for scored in outcome.results]


@router.post("/advanced", response_model=AdvancedSearchResponse)
async def advanced_search(
    data: AdvancedSearchRequest,
    advanced_search_service: AdvancedSearchServiceDep,
) -> AdvancedSearchResponse:
    """Answer a question from the bookmark corpus, citing the bookmarks used."""
    return await advanced_search_service.advanced_search(data.query)
