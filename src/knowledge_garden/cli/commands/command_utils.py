"""Helpers shared by CLI commands that work directly against the local database."""

import asyncio
from typing import Coroutine, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.config import GardenConfig
from knowledge_garden.repository import EntityReferenceRepository, EntityRepository
from knowledge_garden.services.reference_service import ReferenceService
from knowledge_garden.sync import LogseqSyncService

T = TypeVar("T")


def run_with_cleanup(coro: Coroutine[None, None, T]) -> T:  # pragma: no cover
    """Run a coroutine and dispose the database engine afterwards."""

    async def _run() -> T:
        try:
            return await coro
        finally:
            await db.shutdown_db()

    return asyncio.run(_run())


def build_sync_service(
    app_config: GardenConfig, session_maker: async_sessionmaker[AsyncSession]
) -> LogseqSyncService:
    entity_repository = EntityRepository(session_maker)
    reference_service = ReferenceService(
        entity_repository, EntityReferenceRepository(session_maker)
    )
    return LogseqSyncService(app_config, entity_repository, reference_service)
