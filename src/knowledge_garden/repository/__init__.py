from knowledge_garden.repository.configuration_repository import ConfigurationRepository
from knowledge_garden.repository.entity_reference_repository import EntityReferenceRepository
from knowledge_garden.repository.entity_relationship_repository import (
    EntityRelationshipRepository,
)
from knowledge_garden.repository.entity_repository import EntityRepository
from knowledge_garden.repository.vector_index import SqlVectorIndex

__all__ = [
    "ConfigurationRepository",
    "EntityReferenceRepository",
    "EntityRelationshipRepository",
    "EntityRepository",
    "SqlVectorIndex",
]
