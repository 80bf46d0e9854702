"""Repository for the key/value configuration table."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden.models.configuration import Configuration
from knowledge_garden.repository.repository import Repository


class ConfigurationRepository(Repository[Configuration]):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__(session_maker, Configuration)

    async def get_value(self, key: str) -> Optional[str]:
        row = await self.find_by_id(key)
        return row.value if row else None

    async def set_value(self, key: str, value: str, value_type: str = "string") -> Configuration:
        existing = await self.find_by_id(key)
        if existing:
            updated = await self.update(key, {"value": value, "value_type": value_type})
            assert updated is not None
            return updated
        return await self.create({"key": key, "value": value, "value_type": value_type})
