"""Base repository implementation."""

from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from loguru import logger
from sqlalchemy import Executable, Result, Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.models.base import Base

T = TypeVar("T", bound=Base)


class Repository(Generic[T]):
    """Generic async repository over one mapped class."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], Model: Type[T]):
        self.session_maker = session_maker
        self.Model = Model
        self.primary_key = Model.__mapper__.primary_key[0]
        self.valid_columns = [column.key for column in Model.__mapper__.attrs]

    def select(self, *entities: Any) -> Select:
        if not entities:
            entities = (self.Model,)
        return select(*entities)

    def get_model_data(self, entity_data: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in entity_data.items() if k in self.valid_columns}

    async def find_by_id(self, entity_id: Any) -> Optional[T]:
        async with db.scoped_session(self.session_maker) as session:
            return await session.get(self.Model, entity_id)

    async def find_all(self, limit: Optional[int] = None) -> Sequence[T]:
        query = self.select()
        if limit:
            query = query.limit(limit)
        result = await self.execute_query(query)
        return result.scalars().all()

    async def find_one(self, query: Select) -> Optional[T]:
        result = await self.execute_query(query)
        return result.scalars().one_or_none()

    async def create(self, data: dict[str, Any]) -> T:
        async with db.scoped_session(self.session_maker) as session:
            model = self.Model(**self.get_model_data(data))
            session.add(model)
            await session.flush()
            await session.refresh(model)
            return model

    async def add_all(self, models: List[T]) -> List[T]:
        async with db.scoped_session(self.session_maker) as session:
            session.add_all(models)
            await session.flush()
            return models

    async def update(self, entity_id: Any, data: dict[str, Any]) -> Optional[T]:
        async with db.scoped_session(self.session_maker) as session:
            model = await session.get(self.Model, entity_id)
            if model is None:
                return None
            for key, value in self.get_model_data(data).items():
                setattr(model, key, value)
            await session.flush()
            await session.refresh(model)
            logger.debug(f"Updated {self.Model.__name__}: {entity_id}")
            return model

    async def delete(self, entity_id: Any) -> bool:
        async with db.scoped_session(self.session_maker) as session:
            result = await session.execute(delete(self.Model).where(self.primary_key == entity_id))
            return (result.rowcount or 0) > 0

    async def execute_query(self, query: Executable) -> Result[Any]:
        async with db.scoped_session(self.session_maker) as session:
            return await session.execute(query)
