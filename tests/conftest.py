"""Common test fixtures."""

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.api.app import app as fastapi_app
from knowledge_garden.config import ConfigManager, GardenConfig
from knowledge_garden.db import DatabaseType
from knowledge_garden.deps import (
    get_app_config,
    get_embedding_provider,
    get_llm_provider,
    get_session_maker,
)
from knowledge_garden.models.knowledge import Entity
from knowledge_garden.repository import (
    ConfigurationRepository,
    EntityReferenceRepository,
    EntityRelationshipRepository,
    EntityRepository,
    SqlVectorIndex,
)
from knowledge_garden.services.entity_service import EntityService
from knowledge_garden.services.reference_service import ReferenceService
from knowledge_garden.sync import LogseqSyncService, SyncLock


@pytest.fixture
def config_home(tmp_path, monkeypatch) -> Path:
    # Patch HOME environment variable for the duration of the test
    monkeypatch.setenv("HOME", str(tmp_path))
    if os.name == "nt":
        monkeypatch.setenv("USERPROFILE", str(tmp_path))
    monkeypatch.setenv("GARDEN_CONFIG_DIR", str(tmp_path / ".knowledge-garden"))
    # Operator knobs from the developer's shell must not leak into tests
    for name in (
        "LOGSEQ_ROOT",
        "VECTOR_PROVIDER_URL",
        "LLM_PROVIDER_URL",
        "DEFAULT_SEARCH_STRATEGY",
        "SYNC_FANOUT",
        "SYNC_CLOCK_SKEW_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"GARDEN_{name}", raising=False)
    return tmp_path


@pytest.fixture
def logseq_root(config_home: Path) -> Path:
    root = config_home / "graph"
    (root / "pages").mkdir(parents=True)
    (root / "journals").mkdir()
    return root


@pytest.fixture(scope="function")
def app_config(config_home: Path, logseq_root: Path) -> GardenConfig:
    """Test configuration pointing the Logseq root at a temporary graph."""
    return GardenConfig(env="test", logseq_root=logseq_root)


@pytest.fixture
def config_manager(app_config: GardenConfig, config_home: Path) -> ConfigManager:
    # Invalidate config cache to ensure clean state for each test
    from knowledge_garden import config as config_module

    config_module._CONFIG_CACHE = None

    config_manager = ConfigManager()
    config_manager.save_config(app_config)
    return config_manager


@pytest_asyncio.fixture(scope="function")
async def engine_factory(
    app_config: GardenConfig,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    """SQLite database under the temporary config directory, tables created via the ORM."""
    async with db.engine_session_factory(
        db_path=app_config.database_path, db_type=DatabaseType.FILESYSTEM
    ) as (engine, session_maker):
        await db.create_tables(engine)
        yield engine, session_maker


@pytest_asyncio.fixture
async def session_maker(engine_factory) -> async_sessionmaker[AsyncSession]:
    """Get session maker for tests."""
    _, session_maker = engine_factory
    return session_maker


## Repositories


@pytest_asyncio.fixture(scope="function")
async def entity_repository(session_maker: async_sessionmaker[AsyncSession]) -> EntityRepository:
    return EntityRepository(session_maker)


@pytest_asyncio.fixture(scope="function")
async def entity_reference_repository(
    session_maker: async_sessionmaker[AsyncSession],
) -> EntityReferenceRepository:
    return EntityReferenceRepository(session_maker)


@pytest_asyncio.fixture(scope="function")
async def entity_relationship_repository(
    session_maker: async_sessionmaker[AsyncSession],
) -> EntityRelationshipRepository:
    return EntityRelationshipRepository(session_maker)


@pytest_asyncio.fixture(scope="function")
async def configuration_repository(
    session_maker: async_sessionmaker[AsyncSession],
) -> ConfigurationRepository:
    return ConfigurationRepository(session_maker)


@pytest_asyncio.fixture(scope="function")
async def vector_index(session_maker: async_sessionmaker[AsyncSession]) -> SqlVectorIndex:
    return SqlVectorIndex(session_maker)


## Services


@pytest.fixture
def reference_service(
    entity_repository: EntityRepository,
    entity_reference_repository: EntityReferenceRepository,
) -> ReferenceService:
    return ReferenceService(entity_repository, entity_reference_repository)


@pytest.fixture
def entity_service(
    entity_repository: EntityRepository,
    entity_relationship_repository: EntityRelationshipRepository,
    entity_reference_repository: EntityReferenceRepository,
) -> EntityService:
    return EntityService(
        entity_repository, entity_relationship_repository, entity_reference_repository
    )


@pytest.fixture
def sync_lock() -> SyncLock:
    """A private lock so tests never contend with the process-wide one."""
    return SyncLock()


@pytest.fixture
def sync_service(
    app_config: GardenConfig,
    entity_repository: EntityRepository,
    reference_service: ReferenceService,
    sync_lock: SyncLock,
) -> LogseqSyncService:
    return LogseqSyncService(app_config, entity_repository, reference_service, lock=sync_lock)


## Helpers


def write_page(
    root: Path, page_path: str, content: str, modified_at: Optional[datetime] = None
) -> Path:
    """Write a page file and optionally pin its mtime."""
    path = root / page_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if modified_at is not None:
        timestamp = modified_at.timestamp()
        os.utime(path, (timestamp, timestamp))
    return path


@pytest_asyncio.fixture
async def make_entity(entity_repository: EntityRepository):
    async def _make(
        name: str,
        entity_type: str = "concept",
        description: Optional[str] = None,
        properties: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> Entity:
        return await entity_repository.create_entity(
            name=name,
            entity_type=entity_type,
            description=description,
            properties=properties,
            timestamp=timestamp,
        )

    return _make


## API


class FakeEmbeddingProvider:
    """Returns a fixed vector, or raises the configured error."""

    def __init__(self, vector: Optional[list[float]] = None, error: Optional[Exception] = None):
        self.vector = vector or [1.0, 0.0, 0.0]
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def embed(self, text: str, strategy: str) -> list[float]:
        self.calls.append((text, strategy))
        if self.error is not None:
            raise self.error
        return list(self.vector)


class FakeLLMProvider:
    def __init__(self, answer: str = "An answer.", delay: float = 0.0):
        self.answer = answer
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.answer


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def llm_provider() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture(scope="function")
def app(
    app_config: GardenConfig,
    session_maker: async_sessionmaker[AsyncSession],
    embedding_provider: FakeEmbeddingProvider,
    llm_provider: FakeLLMProvider,
) -> AsyncGenerator[FastAPI, None]:
    """Test FastAPI application wired to the test database and fake providers."""
    app = fastapi_app
    app.dependency_overrides[get_app_config] = lambda: app_config
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_embedding_provider] = lambda: embedding_provider
    app.dependency_overrides[get_llm_provider] = lambda: llm_provider
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
