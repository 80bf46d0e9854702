"""Router for Logseq synchronization and forced overrides."""

from dataclasses import asdict

from fastapi import APIRouter, Path

from knowledge_garden.deps import LogseqSyncServiceDep
from knowledge_garden.schemas.entity import EntityResponse, canonical_uuid
from knowledge_garden.schemas.sync import (
    ForceDbRequest,
    ForceGitRequest,
    ForceGitResponse,
    SyncCheckResponse,
    SyncStatsResponse,
)
from knowledge_garden.services.exceptions import ValidationError

router = APIRouter(prefix="/api/sync/logseq", tags=["sync"])


@router.post("", response_model=SyncStatsResponse)
async def synchronize(sync_service: LogseqSyncServiceDep) -> SyncStatsResponse:
    """Run one full reconciliation. 409 while another run holds the sync lock."""
    stats = await sync_service.synchronize()
    return SyncStatsResponse(**asdict(stats))


@router.get("/check", response_model=SyncCheckResponse)
async def hard_sync_check(sync_service: LogseqSyncServiceDep) -> SyncCheckResponse:
    return await sync_service.perform_hard_sync_check()


@router.post("/force-git", response_model=ForceGitResponse)
async def force_update_file_from_db(
    data: ForceGitRequest, sync_service: LogseqSyncServiceDep
) -> ForceGitResponse:
    """Rewrite an entity's page from the database."""
    entity, page_path = await sync_service.force_update_file_from_db(data.entity_id)
    return ForceGitResponse(entity_id=entity.entity_id, page_path=page_path)


@router.post("/force-db", response_model=EntityResponse)
async def force_update_db_from_file(
    data: ForceDbRequest, sync_service: LogseqSyncServiceDep
) -> EntityResponse:
    """Rewrite (or create) the entity described by a page file."""
    entity = await sync_service.force_update_db_from_file(data.page_path)
    return EntityResponse.model_validate(entity)


@router.post("/force-db/{entity_id}", response_model=EntityResponse)
async def force_update_db_by_entity(
    sync_service: LogseqSyncServiceDep,
    entity_id: str = Path(..., description="Entity UUID whose recorded page is re-read"),
) -> EntityResponse:
    try:
        entity_id = canonical_uuid(entity_id)
    except ValueError as e:
        raise ValidationError(str(e), field="entity_id") from e
    entity = await sync_service.force_db_by_entity(entity_id)
    return EntityResponse.model_validate(entity)
