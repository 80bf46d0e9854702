"""Repository for [[reference]] occurrences."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.models.knowledge import EntityReference
from knowledge_garden.repository.repository import Repository


@dataclass(frozen=True)
class ResolvedReference:
    """A parsed reference already mapped to its entity."""

    entity_id: str
    reference_text: str
    position: Optional[int]


@dataclass
class ReplaceResult:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0


class EntityReferenceRepository(Repository[EntityReference]):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        super().__init__(session_maker, EntityReference)

    async def find_by_source(self, source_type: str, source_id: str) -> Sequence[EntityReference]:
        query = (
            self.select()
            .where(
                EntityReference.source_type == source_type,
                EntityReference.source_id == source_id,
            )
            .order_by(EntityReference.position)
        )
        result = await self.execute_query(query)
        return result.scalars().all()

    async def find_by_entity(self, entity_id: str) -> Sequence[EntityReference]:
        query = (
            self.select()
            .where(EntityReference.entity_id == entity_id)
            .order_by(
                EntityReference.source_type,
                EntityReference.source_id,
                EntityReference.position,
            )
        )
        result = await self.execute_query(query)
        return result.scalars().all()

    async def replace_for_source(
        self, source_type: str, source_id: str, references: List[ResolvedReference]
    ) -> ReplaceResult:
        """Make the stored references for one source equal to references.

        Rows are matched on (entity_id, reference_text, n-th occurrence); a
        matched row only has its position updated. Everything happens in one
        transaction so readers never see a half-replaced set.
        """
        outcome = ReplaceResult()
        async with db.scoped_session(self.session_maker) as session:
            existing = (
                await session.execute(
                    select(EntityReference)
                    .where(
                        EntityReference.source_type == source_type,
                        EntityReference.source_id == source_id,
                    )
                    .order_by(EntityReference.position)
                )
            ).scalars().all()

            pool: dict[tuple[str, str], list[EntityReference]] = {}
            for row in existing:
                pool.setdefault((row.entity_id, row.reference_text), []).append(row)

            for reference in references:
                candidates = pool.get((reference.entity_id, reference.reference_text))
                if candidates:
                    row = candidates.pop(0)
                    if row.position != reference.position:
                        row.position = reference.position
                        outcome.updated += 1
                    continue
                session.add(
                    EntityReference(
                        source_type=source_type,
                        source_id=source_id,
                        entity_id=reference.entity_id,
                        reference_text=reference.reference_text,
                        position=reference.position,
                    )
                )
                outcome.inserted += 1

            for leftovers in pool.values():
                for row in leftovers:
                    await session.delete(row)
                    outcome.deleted += 1

        logger.debug(
            f"Replaced references: source={source_type}:{source_id} "
            f"inserted={outcome.inserted} updated={outcome.updated} deleted={outcome.deleted}"
        )
        return outcome
