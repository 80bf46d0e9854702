"""Models package for knowledge-garden."""

from knowledge_garden.models.base import Base
from knowledge_garden.models.configuration import Configuration
from knowledge_garden.models.knowledge import Entity, EntityReference, EntityRelationship
from knowledge_garden.models.sources import (
    Bookmark,
    BrowserHistory,
    Contact,
    Item,
    Message,
    Note,
    Room,
    Session,
)
from knowledge_garden.models.vector import EmbeddingChunk

__all__ = [
    "Base",
    "Bookmark",
    "BrowserHistory",
    "Configuration",
    "Contact",
    "EmbeddingChunk",
    "Entity",
    "EntityReference",
    "EntityRelationship",
    "Item",
    "Message",
    "Note",
    "Room",
    "Session",
]
