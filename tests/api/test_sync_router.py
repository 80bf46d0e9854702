"""Tests for the Logseq sync endpoints."""

from datetime import timedelta
from pathlib import Path

import pytest
from httpx import AsyncClient

from knowledge_garden.sync import SYNC_LOCK
from knowledge_garden.utils import format_timestamp, utc_now

from conftest import write_page


@pytest.mark.asyncio
async def test_synchronize(client: AsyncClient, logseq_root: Path):
    write_page(logseq_root, "pages/raft.md", "---\ntype: concept\n---\n# Raft\n")

    response = await client.post("/api/sync/logseq")

    assert response.status_code == 200
    stats = response.json()
    assert stats["entities_created"] == 1
    assert stats["pages_processed"] == 1
    assert stats["errors"] == []
    assert stats["pages_pulled"] == []
    assert stats["cancelled"] is False


@pytest.mark.asyncio
async def test_synchronize_while_locked(client: AsyncClient):
    async with SYNC_LOCK.hold("test"):
        response = await client.post("/api/sync/logseq")
    assert response.status_code == 409
    assert response.json()["error"] == "sync_in_progress"


@pytest.mark.asyncio
async def test_check_reports_without_writing(client: AsyncClient, logseq_root: Path, make_entity):
    write_page(logseq_root, "pages/raft.md", "# Raft\n")
    entity = await make_entity("Paxos")

    response = await client.get("/api/sync/logseq/check")

    assert response.status_code == 200
    report = response.json()
    assert [item["page_path"] for item in report["missing_in_db"]] == ["pages/raft.md"]
    assert [item["entity"]["entity_id"] for item in report["missing_in_git"]] == [
        entity.entity_id
    ]
    assert not (logseq_root / "pages/paxos.md").exists()


@pytest.mark.asyncio
async def test_force_db_by_entity_uuid(client: AsyncClient, logseq_root: Path, make_entity):
    old_sync = format_timestamp(utc_now() - timedelta(days=1))
    entity = await make_entity(
        "2024_01_05",
        entity_type="journal",
        properties={"page_path": "journals/2024_01_05.md", "last_sync_at": old_sync},
    )
    write_page(logseq_root, "journals/2024_01_05.md", "- Shipped the [[Raft]] prototype\n")

    response = await client.post(f"/api/sync/logseq/force-db/{entity.entity_id.upper()}")

    assert response.status_code == 200
    body = response.json()
    assert body["entity_id"] == entity.entity_id
    assert body["description"] == "Shipped the [[Raft]] prototype"
    assert body["properties"]["page_path"] == "journals/2024_01_05.md"
    assert body["properties"]["last_sync_at"] != old_sync


@pytest.mark.asyncio
async def test_force_db_by_entity_errors(client: AsyncClient):
    response = await client.post("/api/sync/logseq/force-db/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["field"] == "entity_id"

    response = await client.post(
        "/api/sync/logseq/force-db/7f1c3a5e-0000-4000-8000-000000000001"
    )
    assert response.status_code == 404
    assert response.json()["error"] == "entity_not_found"


@pytest.mark.asyncio
async def test_force_db_by_page_path(client: AsyncClient, logseq_root: Path):
    write_page(logseq_root, "pages/raft.md", "---\ntype: concept\n---\n# Raft\n")

    response = await client.post("/api/sync/logseq/force-db", json={"page_path": "pages/raft.md"})

    assert response.status_code == 200
    assert response.json()["type"] == "concept"

    response = await client.post(
        "/api/sync/logseq/force-db", json={"page_path": "../outside.md"}
    )
    assert response.status_code == 400

    response = await client.post(
        "/api/sync/logseq/force-db", json={"page_path": "pages/missing.md"}
    )
    assert response.status_code == 404
    assert response.json()["error"] == "page_not_found"

    (logseq_root / "pages/latin1.md").write_bytes("# Caf\xe9\n".encode("latin-1"))
    response = await client.post(
        "/api/sync/logseq/force-db", json={"page_path": "pages/latin1.md"}
    )
    assert response.status_code == 400
    assert response.json()["field"] == "page_path"


@pytest.mark.asyncio
async def test_force_git(client: AsyncClient, logseq_root: Path, make_entity):
    entity = await make_entity("Raft", properties={"page_path": "pages/raft.md"})

    response = await client.post("/api/sync/logseq/force-git", json={"entity_id": entity.entity_id})

    assert response.status_code == 200
    assert response.json() == {
        "entity_id": entity.entity_id,
        "page_path": "pages/raft.md",
        "status": "ok",
    }
    assert f"id: {entity.entity_id}" in (logseq_root / "pages/raft.md").read_text(encoding="utf-8")

    response = await client.post("/api/sync/logseq/force-git", json={"entity_id": "nope"})
    assert response.status_code == 400
