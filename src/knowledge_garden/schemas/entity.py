"""Entity, relationship and reference schemas."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from knowledge_garden.schemas.base import SQLAlchemyModel


def canonical_uuid(value: str) -> str:
    """Return the 8-4-4-4-12 lowercase form of value or raise ValueError."""
    try:
        return str(uuid.UUID(str(value).strip()))
    except ValueError as e:
        raise ValueError(f"invalid UUID: {value!r}") from e


class EntityResponse(SQLAlchemyModel):
    entity_id: str
    name: str
    type: str
    description: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class EntityRelationshipCreate(BaseModel):
    entity_id: str
    related_type: str
    related_id: str
    relationship_type: str
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("entity_id")
    @classmethod
    def entity_uuid(cls, value: str) -> str:
        return canonical_uuid(value)


class EntityRelationshipResponse(SQLAlchemyModel):
    id: str
    entity_id: str
    related_type: str
    related_id: str
    relationship_type: str
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias="relationship_metadata"
    )
    created_at: datetime
    updated_at: datetime


class EntityReferenceResponse(SQLAlchemyModel):
    id: str
    source_type: str
    source_id: str
    entity_id: str
    reference_text: str
    position: Optional[int] = None


class ParseReferencesRequest(BaseModel):
    content: str


class ParsedReferenceResponse(BaseModel):
    original: str
    entity_name: str
    display_text: str
    position: int

