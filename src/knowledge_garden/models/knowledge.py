"""Knowledge graph models: entities, their relationships and [[references]]."""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from knowledge_garden.models.base import Base
from knowledge_garden.utils import ensure_timezone_aware, utc_now

PAGE_PATH_PROPERTY = "page_path"
LAST_SYNC_PROPERTY = "last_sync_at"


class Entity(Base):
    """A named, typed node in the knowledge garden.

    Entities are soft-deleted through deleted_at. The free-form properties bag
    may carry page_path, the link between an entity and its Logseq page; it is
    mirrored into its own column so live entities can hold a unique index on it.
    """

    __tablename__ = "entity"
    __table_args__ = (
        Index("ix_entity_type", "type"),
        Index("ix_entity_name", "name"),
        Index("ix_entity_updated_at", "updated_at"),
        Index(
            "uix_entity_page_path_live",
            "page_path",
            unique=True,
            sqlite_where=text("deleted_at IS NULL AND page_path IS NOT NULL"),
            postgresql_where=text("deleted_at IS NULL AND page_path IS NOT NULL"),
        ),
    )

    entity_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    page_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("properties")
    def _mirror_page_path(self, key: str, value: Optional[dict[str, Any]]) -> dict[str, Any]:
        value = dict(value or {})
        page_path = value.get(PAGE_PATH_PROPERTY)
        self.page_path = str(page_path) if page_path else None
        return value

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def last_sync_at(self) -> Optional[str]:
        return (self.properties or {}).get(LAST_SYNC_PROPERTY)

    def __getattribute__(self, name):
        """Override attribute access to ensure datetime fields are timezone-aware."""
        value = super().__getattribute__(name)

        if name in ("created_at", "updated_at", "deleted_at") and isinstance(value, datetime):
            return ensure_timezone_aware(value)

        return value

    def __repr__(self) -> str:
        return f"Entity(entity_id={self.entity_id!r}, name={self.name!r}, type={self.type!r})"


class EntityRelationship(Base):
    """Directed typed edge from an entity to any other record.

    related_type names the kind of target (entity, bookmark, contact, ...), so
    the edge is not limited to entity-to-entity links.
    """

    __tablename__ = "entity_relationship"
    __table_args__ = (
        Index("ix_entity_relationship_entity_id", "entity_id"),
        Index("ix_entity_relationship_related", "related_type", "related_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("entity.entity_id", ondelete="CASCADE")
    )
    related_type: Mapped[str] = mapped_column(String)
    related_id: Mapped[str] = mapped_column(String)
    relationship_type: Mapped[str] = mapped_column(String)
    relationship_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return (
            f"EntityRelationship(id={self.id!r}, entity_id={self.entity_id!r}, "
            f"{self.relationship_type!r} -> {self.related_type}:{self.related_id})"
        )


class EntityReference(Base):
    """One occurrence of a [[Name]] token in some source document."""

    __tablename__ = "entity_reference"
    __table_args__ = (
        Index("ix_entity_reference_entity_id", "entity_id"),
        Index("ix_entity_reference_source", "source_type", "source_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source_type: Mapped[str] = mapped_column(String)
    source_id: Mapped[str] = mapped_column(String)
    entity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("entity.entity_id", ondelete="CASCADE")
    )
    reference_text: Mapped[str] = mapped_column(Text)
    # Byte offset of the token in the source document
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"EntityReference(source={self.source_type}:{self.source_id}, "
            f"entity_id={self.entity_id!r}, text={self.reference_text!r}, position={self.position})"
        )
