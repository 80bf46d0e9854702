"""Resolve [[references]] in a document and store them against their entities."""

from dataclasses import dataclass
from typing import List

from loguru import logger

from knowledge_garden.markdown.references import ParsedReference, parse_entity_references
from knowledge_garden.repository.entity_reference_repository import (
    EntityReferenceRepository,
    ReplaceResult,
    ResolvedReference,
)
from knowledge_garden.repository.entity_repository import EntityRepository

UNRESOLVED_TYPE = "unresolved"
LOGSEQ_PAGE_SOURCE = "logseq_page"


@dataclass
class ReferenceSyncResult:
    references: int
    placeholders_created: int
    replaced: ReplaceResult


class ReferenceService:
    """Turns parsed references into EntityReference rows.

    Names resolve by exact match against live entities, oldest first. A name
    with no match gets a placeholder entity of type `unresolved` so the
    reference is never dropped.
    """

    def __init__(
        self,
        entity_repository: EntityRepository,
        entity_reference_repository: EntityReferenceRepository,
    ):
        self.entity_repository = entity_repository
        self.entity_reference_repository = entity_reference_repository

    def parse(self, content: str) -> List[ParsedReference]:
        return parse_entity_references(content)

    async def resolve_names(self, names: List[str]) -> tuple[dict[str, str], int]:
        """Map each name to an entity id, creating placeholders for unknown names.

        Returns the mapping and the number of placeholders created.
        """
        resolved: dict[str, str] = {}
        found = await self.entity_repository.find_by_names(names)
        # Real entities win over placeholders of the same name
        for entity in sorted(found, key=lambda e: e.type == UNRESOLVED_TYPE):
            resolved.setdefault(entity.name, entity.entity_id)

        missing = sorted({name for name in names if name not in resolved})
        if missing:
            placeholders = await self.entity_repository.create_placeholders(
                missing, UNRESOLVED_TYPE
            )
            for placeholder in placeholders:
                resolved[placeholder.name] = placeholder.entity_id
            logger.debug(f"Created unresolved placeholders: names={missing}")
        return resolved, len(missing)

    async def sync_references(
        self, source_type: str, source_id: str, content: str
    ) -> ReferenceSyncResult:
        """Replace the stored references of one source with those parsed from content."""
        parsed = self.parse(content)
        mapping, created = await self.resolve_names([ref.entity_name for ref in parsed])
        references = [
            ResolvedReference(
                entity_id=mapping[ref.entity_name],
                reference_text=ref.original,
                position=ref.position,
            )
            for ref in parsed
        ]
        replaced = await self.entity_reference_repository.replace_for_source(
            source_type, source_id, references
        )
        return ReferenceSyncResult(
            references=len(references), placeholders_created=created, replaced=replaced
        )
