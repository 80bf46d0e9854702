"""Schemas for the Logseq sync endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from knowledge_garden.schemas.entity import canonical_uuid


class SyncStatsResponse(BaseModel):
    pages_processed: int = 0
    pages_created: int = 0
    pages_updated: int = 0
    pages_skipped: int = 0
    entities_processed: int = 0
    entities_created: int = 0
    entities_updated: int = 0
    entities_skipped: int = 0
    pages_pulled: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    cancelled: bool = False


class EntitySummary(BaseModel):
    entity_id: str
    name: str
    type: str
    description: Optional[str] = None


class OutOfSyncItem(BaseModel):
    """A pair that is not IN_SYNC, with the timestamps each side reports."""

    entity: Optional[EntitySummary] = None
    page_path: str
    state: str
    last_sync_db: Optional[datetime] = None
    last_sync_git: Optional[datetime] = None
    file_modified_at: Optional[datetime] = None
    entity_updated_at: Optional[datetime] = None


class MissingInGitItem(BaseModel):
    entity: EntitySummary
    page_path: Optional[str] = None


class MissingInDbItem(BaseModel):
    page_path: str
    name: str
    type: str


class SyncCheckResponse(BaseModel):
    missing_in_db: List[MissingInDbItem] = Field(default_factory=list)
    missing_in_git: List[MissingInGitItem] = Field(default_factory=list)
    out_of_sync: List[OutOfSyncItem] = Field(default_factory=list)


class ForceGitRequest(BaseModel):
    entity_id: str

    @field_validator("entity_id")
    @classmethod
    def canonical_uuid(cls, value: str) -> str:
        return canonical_uuid(value)


class ForceDbRequest(BaseModel):
    page_path: str

    @field_validator("page_path")
    @classmethod
    def relative_posix_path(cls, value: str) -> str:
        value = value.strip().replace("\\", "/").lstrip("/")
        if not value or ".." in value.split("/"):
            raise ValueError("page_path must be a relative path inside the Logseq root")
        return value


class ForceGitResponse(BaseModel):
    entity_id: str
    page_path: str
    status: str = "ok"
