"""Entity, relationship and reference reads for the API."""

from typing import Any, Optional, Sequence

from loguru import logger

from knowledge_garden.models.knowledge import Entity, EntityReference, EntityRelationship
from knowledge_garden.repository.entity_reference_repository import EntityReferenceRepository
from knowledge_garden.repository.entity_relationship_repository import (
    EntityRelationshipRepository,
)
from knowledge_garden.repository.entity_repository import EntityRepository
from knowledge_garden.services.exceptions import EntityNotFoundError, ValidationError


class EntityService:
    def __init__(
        self,
        entity_repository: EntityRepository,
        entity_relationship_repository: EntityRelationshipRepository,
        entity_reference_repository: EntityReferenceRepository,
    ):
        self.entity_repository = entity_repository
        self.entity_relationship_repository = entity_relationship_repository
        self.entity_reference_repository = entity_reference_repository

    async def get_entity(self, entity_id: str) -> Entity:
        entity = await self.entity_repository.get_live(entity_id)
        if entity is None:
            raise EntityNotFoundError(f"Entity not found: {entity_id}", field="entity_id")
        return entity

    async def get_relationships(self, entity_id: str) -> Sequence[EntityRelationship]:
        await self.get_entity(entity_id)
        return await self.entity_relationship_repository.find_for_entity(entity_id)

    async def create_relationship(
        self,
        entity_id: str,
        related_type: str,
        related_id: str,
        relationship_type: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> EntityRelationship:
        await self.get_entity(entity_id)
        if related_type == "entity":
            await self.get_entity(related_id)
        relationship = await self.entity_relationship_repository.create(
            {
                "entity_id": entity_id,
                "related_type": related_type,
                "related_id": related_id,
                "relationship_type": relationship_type,
                "relationship_metadata": metadata,
            }
        )
        logger.info(
            f"Created relationship: {entity_id} -[{relationship_type}]-> "
            f"{related_type}:{related_id}"
        )
        return relationship

    async def get_references(
        self,
        entity_id: Optional[str] = None,
        source_type: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> Sequence[EntityReference]:
        """References to one entity, or the references found in one source document."""
        if entity_id:
            return await self.entity_reference_repository.find_by_entity(entity_id)
        if source_type and source_id:
            return await self.entity_reference_repository.find_by_source(source_type, source_id)
        raise ValidationError(
            "either entity_id or both source_type and source_id are required", field="entity_id"
        )
