"""Repository for typed relationships between entities and other records."""

from typing import Sequence

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden.models.knowledge import EntityRelationship
from knowledge_garden.repository.repository import Repository


class EntityRelationshipRepository(Repository[EntityRelationship]):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__(session_maker, EntityRelationship)

    async def find_for_entity(self, entity_id: str) -> Sequence[EntityRelationship]:
        """Outgoing edges plus incoming edges whose target is this entity."""
        query = (
            self.select()
            .where(
                or_(
                    EntityRelationship.entity_id == entity_id,
                    (EntityRelationship.related_type == "entity")
                    & (EntityRelationship.related_id == entity_id),
                )
            )
            .order_by(EntityRelationship.created_at)
        )
        result = await self.execute_query(query)
        return result.scalars().all()
