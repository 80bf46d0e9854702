"""Request and response schemas for the knowledge-garden API."""

from knowledge_garden.schemas.entity import (
    EntityReferenceResponse,
    EntityRelationshipCreate,
    EntityRelationshipResponse,
    EntityResponse,
    ParsedReferenceResponse,
    ParseReferencesRequest,
)
from knowledge_garden.schemas.search import (
    AdvancedSearchRequest,
    AdvancedSearchResponse,
    Citation,
    UnifiedSearchResult,
)
from knowledge_garden.schemas.sync import (
    ForceDbRequest,
    ForceGitRequest,
    ForceGitResponse,
    SyncCheckResponse,
    SyncStatsResponse,
)

__all__ = [
    "AdvancedSearchRequest",
    "AdvancedSearchResponse",
    "Citation",
    "EntityReferenceResponse",
    "EntityRelationshipCreate",
    "EntityRelationshipResponse",
    "EntityResponse",
    "ForceDbRequest",
    "ForceGitRequest",
    "ForceGitResponse",
    "ParseReferencesRequest",
    "ParsedReferenceResponse",
    "SyncCheckResponse",
    "SyncStatsResponse",
    "UnifiedSearchResult",
]
