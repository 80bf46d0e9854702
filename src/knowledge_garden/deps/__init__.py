"""FastAPI dependencies, re-exported for routers."""

from knowledge_garden.deps.config import AppConfigDep, get_app_config
from knowledge_garden.deps.db import SessionMakerDep, get_session_maker
from knowledge_garden.deps.repositories import (
    ConfigurationRepositoryDep,
    EntityReferenceRepositoryDep,
    EntityRelationshipRepositoryDep,
    EntityRepositoryDep,
    SourceAdaptersDep,
    VectorIndexDep,
)
from knowledge_garden.deps.services import (
    AdvancedSearchServiceDep,
    EmbeddingProviderDep,
    EntityServiceDep,
    LLMProviderDep,
    LogseqSyncServiceDep,
    ReferenceServiceDep,
    SearchServiceDep,
    get_embedding_provider,
    get_llm_provider,
)

__all__ = [
    "AdvancedSearchServiceDep",
    "AppConfigDep",
    "ConfigurationRepositoryDep",
    "EmbeddingProviderDep",
    "EntityReferenceRepositoryDep",
    "EntityRelationshipRepositoryDep",
    "EntityRepositoryDep",
    "EntityServiceDep",
    "LLMProviderDep",
    "LogseqSyncServiceDep",
    "ReferenceServiceDep",
    "SearchServiceDep",
    "SessionMakerDep",
    "SourceAdaptersDep",
    "VectorIndexDep",
    "get_app_config",
    "get_embedding_provider",
    "get_llm_provider",
    "get_session_maker",
]
