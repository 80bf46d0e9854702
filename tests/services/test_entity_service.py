"""Tests for entity, relationship and reference reads."""

import uuid

import pytest

from knowledge_garden.services.entity_service import EntityService
from knowledge_garden.services.reference_service import ReferenceService
from knowledge_garden.services.exceptions import EntityNotFoundError, ValidationError


@pytest.mark.asyncio
async def test_get_entity(entity_service: EntityService, make_entity):
    entity = await make_entity("Raft")
    assert (await entity_service.get_entity(entity.entity_id)).name == "Raft"

    with pytest.raises(EntityNotFoundError) as exc:
        await entity_service.get_entity(str(uuid.uuid4()))
    assert exc.value.field == "entity_id"


@pytest.mark.asyncio
async def test_create_and_list_relationships(entity_service: EntityService, make_entity):
    raft = await make_entity("Raft")
    ongaro = await make_entity("Diego Ongaro", "person")

    relationship = await entity_service.create_relationship(
        ongaro.entity_id, "entity", raft.entity_id, "authored", {"year": 2014}
    )
    await entity_service.create_relationship(raft.entity_id, "bookmark", "b1", "described_by")

    assert relationship.relationship_metadata == {"year": 2014}
    outgoing = await entity_service.get_relationships(ongaro.entity_id)
    assert [r.relationship_type for r in outgoing] == ["authored"]
    # Incoming entity edges are listed on the target too
    both = await entity_service.get_relationships(raft.entity_id)
    assert sorted(r.relationship_type for r in both) == ["authored", "described_by"]


@pytest.mark.asyncio
async def test_relationship_to_missing_entity_is_rejected(
    entity_service: EntityService, make_entity
):
    raft = await make_entity("Raft")
    with pytest.raises(EntityNotFoundError):
        await entity_service.create_relationship(
            raft.entity_id, "entity", str(uuid.uuid4()), "related"
        )


@pytest.mark.asyncio
async def test_get_references(
    entity_service: EntityService, reference_service: ReferenceService, make_entity
):
    raft = await make_entity("Raft")
    await reference_service.sync_references("note", "n1", "[[Raft]]")

    by_entity = await entity_service.get_references(entity_id=raft.entity_id)
    by_source = await entity_service.get_references(source_type="note", source_id="n1")

    assert [r.id for r in by_entity] == [r.id for r in by_source]
    with pytest.raises(ValidationError):
        await entity_service.get_references(source_type="note")
