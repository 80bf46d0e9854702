"""Tests for resolving [[references]] to entities."""

import pytest

from knowledge_garden.repository import EntityReferenceRepository, EntityRepository
from knowledge_garden.services.reference_service import UNRESOLVED_TYPE, ReferenceService


@pytest.mark.asyncio
async def test_sync_references_resolves_existing_and_creates_placeholders(
    reference_service: ReferenceService,
    entity_repository: EntityRepository,
    entity_reference_repository: EntityReferenceRepository,
):
    kay = await entity_repository.create_entity("Alan Kay", "person")
    content = "see [[Alan Kay|Kay]] and [[Smalltalk]]"

    result = await reference_service.sync_references("note", "n1", content)

    assert result.references == 2
    assert result.placeholders_created == 1
    placeholder = (await entity_repository.find_by_names(["Smalltalk"]))[0]
    assert placeholder.type == UNRESOLVED_TYPE

    stored = await entity_reference_repository.find_by_source("note", "n1")
    assert [(r.entity_id, r.reference_text, r.position) for r in stored] == [
        (kay.entity_id, "[[Alan Kay|Kay]]", 4),
        (placeholder.entity_id, "[[Smalltalk]]", 25),
    ]


@pytest.mark.asyncio
async def test_placeholders_are_reused(
    reference_service: ReferenceService, entity_repository: EntityRepository
):
    await reference_service.sync_references("note", "n1", "[[Smalltalk]]")
    second = await reference_service.sync_references("note", "n2", "[[Smalltalk]] [[Smalltalk]]")

    assert second.placeholders_created == 0
    assert len(await entity_repository.find_by_names(["Smalltalk"])) == 1


@pytest.mark.asyncio
async def test_real_entities_win_over_placeholders(
    reference_service: ReferenceService, entity_repository: EntityRepository
):
    await reference_service.sync_references("note", "n1", "[[Smalltalk]]")
    language = await entity_repository.create_entity("Smalltalk", "concept")

    mapping, created = await reference_service.resolve_names(["Smalltalk"])

    assert created == 0
    assert mapping == {"Smalltalk": language.entity_id}


@pytest.mark.asyncio
async def test_editing_a_document_replaces_its_references(
    reference_service: ReferenceService,
    entity_reference_repository: EntityReferenceRepository,
):
    await reference_service.sync_references("note", "n1", "[[A]] and [[B]]")
    result = await reference_service.sync_references("note", "n1", "only [[B]]")

    assert result.replaced.deleted == 1
    assert result.replaced.updated == 1
    stored = await entity_reference_repository.find_by_source("note", "n1")
    assert [(r.reference_text, r.position) for r in stored] == [("[[B]]", 5)]
