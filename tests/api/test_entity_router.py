"""Tests for the entity and reference endpoints."""

import pytest
from httpx import AsyncClient

from knowledge_garden.services.reference_service import ReferenceService


@pytest.mark.asyncio
async def test_get_entity(client: AsyncClient, make_entity):
    entity = await make_entity("Raft", description="Consensus")

    response = await client.get(f"/api/entities/{entity.entity_id}")

    assert response.status_code == 200
    assert response.json()["name"] == "Raft"
    assert response.json()["description"] == "Consensus"


@pytest.mark.asyncio
async def test_get_entity_errors(client: AsyncClient):
    response = await client.get("/api/entities/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"

    response = await client.get("/api/entities/7f1c3a5e-0000-4000-8000-000000000001")
    assert response.status_code == 404
    assert response.json()["error"] == "entity_not_found"


@pytest.mark.asyncio
async def test_relationships(client: AsyncClient, make_entity):
    raft = await make_entity("Raft")

    response = await client.post(
        "/api/entities/relationships",
        json={
            "entity_id": raft.entity_id,
            "related_type": "bookmark",
            "related_id": "b1",
            "relationship_type": "described_by",
            "metadata": {"note": "paper"},
        },
    )
    assert response.status_code == 200
    assert response.json()["metadata"] == {"note": "paper"}

    response = await client.get(f"/api/entities/{raft.entity_id}/relationships")
    assert [r["related_id"] for r in response.json()] == ["b1"]


@pytest.mark.asyncio
async def test_references(client: AsyncClient, reference_service: ReferenceService, make_entity):
    raft = await make_entity("Raft")
    await reference_service.sync_references("note", "n1", "See [[Raft|the paper]].")

    by_entity = await client.get("/api/entity-references", params={"entity_id": raft.entity_id})
    by_source = await client.get(
        "/api/entity-references", params={"source_type": "note", "source_id": "n1"}
    )

    assert [r["reference_text"] for r in by_entity.json()] == ["[[Raft|the paper]]"]
    assert [r["position"] for r in by_source.json()] == [4]

    response = await client.get("/api/entity-references")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_parse_references(client: AsyncClient):
    response = await client.post(
        "/api/entity-references/parse", json={"content": "Café [[Raft]] and [[Zab|ZooKeeper]]"}
    )

    assert response.status_code == 200
    assert response.json() == [
        {"original": "[[Raft]]", "entity_name": "Raft", "display_text": "Raft", "position": 6},
        {
            "original": "[[Zab|ZooKeeper]]",
            "entity_name": "Zab",
            "display_text": "ZooKeeper",
            "position": 19,
        },
    ]
