"""Repository dependencies."""

from typing import Annotated

from fastapi import Depends

from knowledge_garden.deps.db import SessionMakerDep
from knowledge_garden.repository import (
    ConfigurationRepository,
    EntityReferenceRepository,
    EntityRelationshipRepository,
    EntityRepository,
    SqlVectorIndex,
)
from knowledge_garden.repository.source_adapters import SourceAdapter, build_source_adapters

# --- Entity graph ---


async def get_entity_repository(session_maker: SessionMakerDep) -> EntityRepository:
    return EntityRepository(session_maker)


EntityRepositoryDep = Annotated[EntityRepository, Depends(get_entity_repository)]


async def get_entity_reference_repository(
    session_maker: SessionMakerDep,
) -> EntityReferenceRepository:
    return EntityReferenceRepository(session_maker)


EntityReferenceRepositoryDep = Annotated[
    EntityReferenceRepository, Depends(get_entity_reference_repository)
]


async def get_entity_relationship_repository(
    session_maker: SessionMakerDep,
) -> EntityRelationshipRepository:
    return EntityRelationshipRepository(session_maker)


EntityRelationshipRepositoryDep = Annotated[
    EntityRelationshipRepository, Depends(get_entity_relationship_repository)
]


async def get_configuration_repository(session_maker: SessionMakerDep) -> ConfigurationRepository:
    return ConfigurationRepository(session_maker)


ConfigurationRepositoryDep = Annotated[
    ConfigurationRepository, Depends(get_configuration_repository)
]

# --- Search sources ---


async def get_vector_index(session_maker: SessionMakerDep) -> SqlVectorIndex:
    return SqlVectorIndex(session_maker)


VectorIndexDep = Annotated[SqlVectorIndex, Depends(get_vector_index)]


async def get_source_adapters(
    session_maker: SessionMakerDep, vector_index: VectorIndexDep
) -> list[SourceAdapter]:
    return build_source_adapters(session_maker, vector_index)


SourceAdaptersDep = Annotated[list[SourceAdapter], Depends(get_source_adapters)]
