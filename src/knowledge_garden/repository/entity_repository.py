"""Repository for managing entities in the knowledge garden."""

from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.models.knowledge import Entity
from knowledge_garden.repository.repository import Repository
from knowledge_garden.utils import utc_now


class EntityRepository(Repository[Entity]):
    """Repository for Entity model.

    Every finder excludes soft-deleted rows unless the method name says otherwise.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__(session_maker, Entity)

    def _live(self):
        return self.select().where(Entity.deleted_at.is_(None))

    async def get_live(self, entity_id: str) -> Optional[Entity]:
        return await self.find_one(self._live().where(Entity.entity_id == entity_id))

    async def get_by_page_path(self, page_path: str) -> Optional[Entity]:
        return await self.find_one(self._live().where(Entity.page_path == page_path))

    async def get_by_name_and_type(self, name: str, entity_type: str) -> Optional[Entity]:
        query = (
            self._live()
            .where(Entity.name == name, Entity.type == entity_type)
            .order_by(Entity.created_at)
            .limit(1)
        )
        return await self.find_one(query)

    async def find_by_names(self, names: Iterable[str]) -> List[Entity]:
        """Live entities whose name exactly matches one of names, oldest first."""
        names = list(set(names))
        if not names:
            return []
        query = self._live().where(Entity.name.in_(names)).order_by(Entity.created_at)
        result = await self.execute_query(query)
        return list(result.scalars().all())

    async def list_deleted(self) -> Sequence[Entity]:
        query = self.select().where(Entity.deleted_at.is_not(None)).order_by(Entity.deleted_at)
        result = await self.execute_query(query)
        return result.scalars().all()

    async def list_sync_candidates(self, types: List[str]) -> Sequence[Entity]:
        """Live entities that belong in the Logseq graph.

        An entity qualifies when its type is mirrored, or when it already owns a
        page, whatever its type.
        """
        query = self._live().where(
            or_(Entity.type.in_(types), Entity.page_path.is_not(None))
        )
        result = await self.execute_query(query.order_by(Entity.page_path, Entity.name))
        return result.scalars().all()

    async def create_entity(
        self,
        name: str,
        entity_type: str,
        description: Optional[str] = None,
        properties: Optional[dict[str, Any]] = None,
        entity_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Entity:
        timestamp = timestamp or utc_now()
        data: dict[str, Any] = {
            "name": name,
            "type": entity_type,
            "description": description,
            "properties": properties or {},
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        if entity_id:
            data["entity_id"] = entity_id
        entity = await self.create(data)
        logger.debug(
            f"Created entity: entity_id={entity.entity_id} name={name!r} type={entity_type}"
        )
        return entity

    async def update_entity(self, entity_id: str, data: dict[str, Any]) -> Optional[Entity]:
        """Apply data to an entity and bump updated_at unless data sets it."""
        data = dict(data)
        data.setdefault("updated_at", utc_now())
        return await self.update(entity_id, data)

    async def soft_delete(self, entity_id: str) -> bool:
        async with db.scoped_session(self.session_maker) as session:
            entity = await session.get(Entity, entity_id)
            if entity is None or entity.deleted_at is not None:
                return False
            entity.deleted_at = utc_now()
            return True

    async def create_placeholders(self, names: Iterable[str], entity_type: str) -> List[Entity]:
        """Create one placeholder per name in a single transaction."""
        now = utc_now()
        async with db.scoped_session(self.session_maker) as session:
            placeholders = [
                Entity(name=name, type=entity_type, properties={}, created_at=now, updated_at=now)
                for name in names
            ]
            session.add_all(placeholders)
            await session.flush()
            return placeholders

