"""Service dependency injection for knowledge-garden.

This module provides service-layer dependencies:
- EmbeddingProvider, LLMProvider (shared clients held on app.state)
- SearchService, AdvancedSearchService
- EntityService, ReferenceService
- LogseqSyncService
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

from knowledge_garden.deps.config import AppConfigDep
from knowledge_garden.deps.repositories import (
    ConfigurationRepositoryDep,
    EntityReferenceRepositoryDep,
    EntityRelationshipRepositoryDep,
    EntityRepositoryDep,
    SourceAdaptersDep,
    VectorIndexDep,
)
from knowledge_garden.providers import EmbeddingProvider, LLMProvider
from knowledge_garden.repository.source_adapters import BookmarkAdapter
from knowledge_garden.services.advanced_search_service import AdvancedSearchService
from knowledge_garden.services.entity_service import EntityService
from knowledge_garden.services.reference_service import ReferenceService
from knowledge_garden.services.search_service import SearchService
from knowledge_garden.sync import LogseqSyncService

# --- Providers ---


async def get_embedding_provider(request: Request) -> Optional[EmbeddingProvider]:
    return getattr(request.app.state, "embedding_provider", None)


EmbeddingProviderDep = Annotated[Optional[EmbeddingProvider], Depends(get_embedding_provider)]


async def get_llm_provider(request: Request) -> Optional[LLMProvider]:
    return getattr(request.app.state, "llm_provider", None)


LLMProviderDep = Annotated[Optional[LLMProvider], Depends(get_llm_provider)]

# --- Search ---


async def get_search_service(
    adapters: SourceAdaptersDep,
    app_config: AppConfigDep,
    embedding_provider: EmbeddingProviderDep,
) -> SearchService:
    return SearchService(adapters, app_config, embedding_provider)


SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]


async def get_advanced_search_service(
    adapters: SourceAdaptersDep,
    vector_index: VectorIndexDep,
    configuration_repository: ConfigurationRepositoryDep,
    app_config: AppConfigDep,
    embedding_provider: EmbeddingProviderDep,
    llm_provider: LLMProviderDep,
) -> AdvancedSearchService:
    bookmark_adapter = next(a for a in adapters if isinstance(a, BookmarkAdapter))
    return AdvancedSearchService(
        bookmark_adapter,
        vector_index,
        configuration_repository,
        app_config,
        embedding_provider=embedding_provider,
        llm_provider=llm_provider,
    )


AdvancedSearchServiceDep = Annotated[AdvancedSearchService, Depends(get_advanced_search_service)]

# --- Entities ---


async def get_reference_service(
    entity_repository: EntityRepositoryDep,
    entity_reference_repository: EntityReferenceRepositoryDep,
) -> ReferenceService:
    return ReferenceService(entity_repository, entity_reference_repository)


ReferenceServiceDep = Annotated[ReferenceService, Depends(get_reference_service)]


async def get_entity_service(
    entity_repository: EntityRepositoryDep,
    entity_relationship_repository: EntityRelationshipRepositoryDep,
    entity_reference_repository: EntityReferenceRepositoryDep,
) -> EntityService:
    return EntityService(
        entity_repository, entity_relationship_repository, entity_reference_repository
    )


EntityServiceDep = Annotated[EntityService, Depends(get_entity_service)]

# --- Sync ---


async def get_logseq_sync_service(
    app_config: AppConfigDep,
    entity_repository: EntityRepositoryDep,
    reference_service: ReferenceServiceDep,
) -> LogseqSyncService:
    return LogseqSyncService(app_config, entity_repository, reference_service)


LogseqSyncServiceDep = Annotated[LogseqSyncService, Depends(get_logseq_sync_service)]
