"""Routers for entities, their relationships and [[references]]."""

from typing import List, Optional

from fastapi import APIRouter, Query

from knowledge_garden.deps import EntityServiceDep, ReferenceServiceDep
from knowledge_garden.schemas.entity import (
    EntityReferenceResponse,
    EntityRelationshipCreate,
    EntityRelationshipResponse,
    EntityResponse,
    ParsedReferenceResponse,
    ParseReferencesRequest,
    canonical_uuid,
)
from knowledge_garden.services.exceptions import ValidationError

router = APIRouter(prefix="/api/entities", tags=["entities"])
references_router = APIRouter(prefix="/api/entity-references", tags=["entities"])


def _entity_uuid(value: str, field: str = "entity_id") -> str:
    try:
        return canonical_uuid(value)
    except ValueError as e:
        raise ValidationError(str(e), field=field) from e


@router.post("/relationships", response_model=EntityRelationshipResponse)
async def create_relationship(
    data: EntityRelationshipCreate, entity_service: EntityServiceDep
) -> EntityRelationshipResponse:
    relationship = await entity_service.create_relationship(
        data.entity_id,
        data.related_type,
        data.related_id,
        data.relationship_type,
        data.metadata,
    )
    return EntityRelationshipResponse.model_validate(relationship)


@router.get("/{entity_id}", response_model=EntityResponse)
async def get_entity(entity_id: str, entity_service: EntityServiceDep) -> EntityResponse:
    entity = await entity_service.get_entity(_entity_uuid(entity_id))
    return EntityResponse.model_validate(entity)


@router.get("/{entity_id}/relationships", response_model=List[EntityRelationshipResponse])
async def get_relationships(
    entity_id: str, entity_service: EntityServiceDep
) -> List[EntityRelationshipResponse]:
    relationships = await entity_service.get_relationships(_entity_uuid(entity_id))
    return [EntityRelationshipResponse.model_validate(r) for r in relationships]


@references_router.get("", response_model=List[EntityReferenceResponse])
async def list_references(
    entity_service: EntityServiceDep,
    entity_id: Optional[str] = Query(None, description="References pointing at this entity"),
    source_type: Optional[str] = Query(None),
    source_id: Optional[str] = Query(None),
) -> List[EntityReferenceResponse]:
    """References to one entity, or the references found in one source document."""
    references = await entity_service.get_references(
        entity_id=_entity_uuid(entity_id) if entity_id else None,
        source_type=source_type,
        source_id=source_id,
    )
    return [EntityReferenceResponse.model_validate(r) for r in references]


@references_router.post("/parse", response_model=List[ParsedReferenceResponse])
async def parse_references(
    data: ParseReferencesRequest, reference_service: ReferenceServiceDep
) -> List[ParsedReferenceResponse]:
    """Parse [[Name]] and [[Name|Display]] tokens without resolving them."""
    return [
        ParsedReferenceResponse(
            original=ref.original,
            entity_name=ref.entity_name,
            display_text=ref.display_text,
            position=ref.position,
        )
        for ref in reference_service.parse(data.content)
    ]
