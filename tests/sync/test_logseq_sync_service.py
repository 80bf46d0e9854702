"""Tests for reconciling entities with the Logseq graph."""

import asyncio
import os
import shutil
import subprocess
from datetime import timedelta
from pathlib import Path

import pytest

from knowledge_garden.markdown.logseq_codec import parse
from knowledge_garden.repository import EntityReferenceRepository, EntityRepository
from knowledge_garden.services.exceptions import (
    EntityNotFoundError,
    PageNotFoundError,
    SnapshotError,
    SyncInProgressError,
    ValidationError,
)
from knowledge_garden.sync import LogseqSyncService, SyncLock
from knowledge_garden.utils import format_timestamp, utc_now

from conftest import write_page

RAFT = "---\ntype: concept\n---\n# Raft\n\nA consensus protocol.\n"


def backdate(root: Path, page_path: str, hours: float = 1) -> None:
    timestamp = (utc_now() - timedelta(hours=hours)).timestamp()
    os.utime(root / page_path, (timestamp, timestamp))


@pytest.mark.asyncio
async def test_new_file_creates_entity(
    sync_service: LogseqSyncService, entity_repository: EntityRepository, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)

    stats = await sync_service.synchronize()

    assert stats.entities_created == 1
    assert stats.pages_processed == 1
    assert stats.errors == []
    entity = await entity_repository.get_by_page_path("pages/raft.md")
    assert entity is not None
    assert entity.name == "raft"
    assert entity.type == "concept"
    assert entity.description == "A consensus protocol."
    assert entity.properties["page_path"] == "pages/raft.md"
    assert entity.properties["content"] == "# Raft\n\nA consensus protocol.\n"
    assert entity.last_sync_at is not None
    # The file itself is not rewritten
    assert (logseq_root / "pages/raft.md").read_text(encoding="utf-8") == RAFT


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(
    sync_service: LogseqSyncService, make_entity, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    await make_entity("Leader Election", description="Picks one node to drive the log.")
    first = await sync_service.synchronize()
    assert first.entities_created == 1
    assert first.pages_created == 1
    written = (logseq_root / "pages/leader_election.md").read_text(encoding="utf-8")

    second = await sync_service.synchronize()

    assert second.entities_created == second.entities_updated == 0
    assert second.pages_created == second.pages_updated == 0
    assert second.pages_skipped == 2
    assert second.entities_skipped == 2
    assert second.errors == []
    assert (logseq_root / "pages/leader_election.md").read_text(encoding="utf-8") == written


@pytest.mark.asyncio
async def test_new_entity_writes_page(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    entity = await make_entity(
        "Leader Election",
        description="Picks one node to drive the log.",
        properties={"aliases": ["election"]},
    )

    stats = await sync_service.synchronize()

    assert stats.pages_created == 1
    page = parse(
        (logseq_root / "pages/leader_election.md").read_text(encoding="utf-8"),
        "pages/leader_election.md",
    )
    assert page.entity_id == entity.entity_id
    assert list(page.properties)[:4] == ["id", "title", "type", "description"]
    assert page.properties["title"] == "Leader Election"
    assert page.properties["aliases"] == ["election"]
    assert page.properties["page_path"] == "pages/leader_election.md"
    assert page.body == "# Leader Election\n\nPicks one node to drive the log.\n"

    stored = await entity_repository.get_live(entity.entity_id)
    assert stored.page_path == "pages/leader_election.md"
    assert stored.last_sync_at is not None


@pytest.mark.asyncio
async def test_page_path_collision_gets_an_id_suffix(
    sync_service: LogseqSyncService, make_entity, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    entity = await make_entity("Raft", entity_type="project")

    await sync_service.synchronize()

    assert (logseq_root / f"pages/raft_{entity.entity_id[:8]}.md").exists()


@pytest.mark.asyncio
async def test_file_edit_updates_entity(
    sync_service: LogseqSyncService, entity_repository: EntityRepository, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    await sync_service.synchronize()
    entity = await entity_repository.get_by_page_path("pages/raft.md")
    await entity_repository.update_entity(
        entity.entity_id, {"updated_at": utc_now() - timedelta(hours=1)}
    )
    write_page(logseq_root, "pages/raft.md", RAFT.replace("A consensus", "An understandable"))

    stats = await sync_service.synchronize()

    assert stats.entities_updated == 1
    updated = await entity_repository.get_live(entity.entity_id)
    assert updated.description == "An understandable protocol."


@pytest.mark.asyncio
async def test_entity_edit_rewrites_page(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    entity = await make_entity("Leader Election")
    await sync_service.synchronize()
    backdate(logseq_root, "pages/leader_election.md")
    await entity_repository.update_entity(entity.entity_id, {"description": "Now documented."})

    stats = await sync_service.synchronize()

    assert stats.pages_updated == 1
    text = (logseq_root / "pages/leader_election.md").read_text(encoding="utf-8")
    assert "description: Now documented." in text


@pytest.mark.asyncio
async def test_conflict_leaves_both_sides_untouched(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    last_sync = utc_now() - timedelta(hours=2)
    edited_at = last_sync + timedelta(hours=1)
    entity = await make_entity(
        "raft",
        properties={
            "page_path": "pages/raft.md",
            "last_sync_at": format_timestamp(last_sync),
            "content": "# Raft\n\nEdited in the app.\n",
        },
        timestamp=edited_at,
    )
    file_text = RAFT.replace("A consensus protocol.", "Edited in Logseq.")
    write_page(logseq_root, "pages/raft.md", file_text, modified_at=edited_at)

    check = await sync_service.perform_hard_sync_check()
    assert [(item.page_path, item.state) for item in check.out_of_sync] == [
        ("pages/raft.md", "CONFLICT")
    ]
    assert check.out_of_sync[0].entity.entity_id == entity.entity_id

    stats = await sync_service.synchronize()

    assert len(stats.errors) == 1
    assert "pages/raft.md" in stats.errors[0]
    assert stats.pages_skipped == 1
    assert (logseq_root / "pages/raft.md").read_text(encoding="utf-8") == file_text
    stored = await entity_repository.get_live(entity.entity_id)
    assert stored.properties["content"] == "# Raft\n\nEdited in the app.\n"


@pytest.mark.asyncio
async def test_file_of_deleted_entity_is_an_orphan(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    entity = await make_entity("raft", properties={"page_path": "pages/raft.md"})
    await entity_repository.soft_delete(entity.entity_id)
    write_page(logseq_root, "pages/raft.md", RAFT)

    stats = await sync_service.synchronize()

    assert stats.entities_created == 0
    assert stats.pages_skipped == 1
    assert "orphan" in stats.errors[0]
    assert await entity_repository.get_by_page_path("pages/raft.md") is None


@pytest.mark.asyncio
async def test_entity_whose_page_vanished_is_rewritten(
    sync_service: LogseqSyncService, make_entity, logseq_root: Path
):
    await make_entity("Gone", properties={"page_path": "pages/gone.md"})

    stats = await sync_service.synchronize()

    assert stats.pages_created == 1
    assert (logseq_root / "pages/gone.md").exists()


@pytest.mark.asyncio
async def test_moved_page_is_followed_by_id(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    entity = await make_entity("Raft")
    await sync_service.synchronize()
    target = logseq_root / "pages/consensus/raft.md"
    target.parent.mkdir(parents=True)
    (logseq_root / "pages/raft.md").rename(target)

    stats = await sync_service.synchronize()

    assert stats.entities_updated == 1
    assert stats.entities_created == 0
    moved = await entity_repository.get_live(entity.entity_id)
    assert moved.page_path == "pages/consensus/raft.md"
    assert moved.name == "Raft"


@pytest.mark.asyncio
async def test_template_pages_are_rejected(
    sync_service: LogseqSyncService, entity_repository: EntityRepository, logseq_root: Path
):
    write_page(logseq_root, "pages/template.md", "---\ntitle: {{ .Title }}\n---\n")

    stats = await sync_service.synchronize()

    assert stats.pages_skipped == 1
    assert stats.entities_created == 0
    assert "template" in stats.errors[0]
    assert await entity_repository.get_by_page_path("pages/template.md") is None


@pytest.mark.asyncio
async def test_references_resolve_across_pages_of_one_run(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    entity_reference_repository: EntityReferenceRepository,
    logseq_root: Path,
):
    write_page(logseq_root, "pages/raft.md", "# Raft\n\nCompare with [[paxos]] and [[Zab]].\n")
    write_page(logseq_root, "pages/paxos.md", "# Paxos\n")

    await sync_service.synchronize()

    raft = await entity_repository.get_by_page_path("pages/raft.md")
    paxos = await entity_repository.get_by_page_path("pages/paxos.md")
    references = await entity_reference_repository.find_by_source("logseq_page", raft.entity_id)
    by_text = {ref.reference_text: ref for ref in references}
    assert set(by_text) == {"[[paxos]]", "[[Zab]]"}
    assert by_text["[[paxos]]"].entity_id == paxos.entity_id
    placeholder = await entity_repository.get_live(by_text["[[Zab]]"].entity_id)
    assert placeholder.type == "unresolved"


@pytest.mark.asyncio
async def test_hard_check_reports_missing_sides(
    sync_service: LogseqSyncService, make_entity, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    entity = await make_entity("Leader Election")

    check = await sync_service.perform_hard_sync_check()

    assert [(i.page_path, i.name, i.type) for i in check.missing_in_db] == [
        ("pages/raft.md", "raft", "concept")
    ]
    assert [i.entity.entity_id for i in check.missing_in_git] == [entity.entity_id]
    assert {i.state for i in check.out_of_sync} == {"NEW_FILE", "NEW_ENTITY"}
    # Checking changes nothing
    assert not (logseq_root / "pages/leader_election.md").exists()


@pytest.mark.asyncio
async def test_runs_are_exclusive(sync_service: LogseqSyncService, sync_lock: SyncLock):
    async with sync_lock.hold("synchronize"):
        with pytest.raises(SyncInProgressError):
            await sync_service.synchronize()
        with pytest.raises(SyncInProgressError):
            await sync_service.force_update_db_from_file("pages/raft.md")


@pytest.mark.asyncio
async def test_cancelled_run_returns_partial_stats(
    sync_service: LogseqSyncService, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    cancel = asyncio.Event()
    cancel.set()

    stats = await sync_service.synchronize(cancel)

    assert stats.cancelled is True
    assert stats.entities_created == 0
    assert not sync_service.lock.locked


@pytest.mark.asyncio
async def test_unconfigured_root(
    app_config, entity_repository: EntityRepository, reference_service, sync_lock: SyncLock
):
    config = app_config.model_copy(update={"logseq_root": None})
    service = LogseqSyncService(config, entity_repository, reference_service, lock=sync_lock)
    with pytest.raises(SnapshotError):
        await service.synchronize()


@pytest.mark.asyncio
async def test_force_db_from_file(
    sync_service: LogseqSyncService,
    entity_repository: EntityRepository,
    make_entity,
    logseq_root: Path,
):
    old_sync = format_timestamp(utc_now() - timedelta(days=1))
    entity = await make_entity(
        "2024_01_05",
        entity_type="journal",
        properties={"page_path": "journals/2024_01_05.md", "last_sync_at": old_sync},
    )
    write_page(logseq_root, "journals/2024_01_05.md", "- Met [[Ana]] about the roadmap\n")

    updated = await sync_service.force_update_db_from_file("journals/2024_01_05.md")

    assert updated.entity_id == entity.entity_id
    assert updated.description == "Met [[Ana]] about the roadmap"
    assert updated.last_sync_at != old_sync


@pytest.mark.asyncio
async def test_force_db_creates_entity_for_unknown_page(
    sync_service: LogseqSyncService, logseq_root: Path
):
    write_page(logseq_root, "pages/raft.md", RAFT)
    created = await sync_service.force_update_db_from_file("pages/raft.md")
    assert created.page_path == "pages/raft.md"
    assert created.type == "concept"


@pytest.mark.asyncio
async def test_force_db_errors(sync_service: LogseqSyncService, logseq_root: Path):
    with pytest.raises(PageNotFoundError):
        await sync_service.force_update_db_from_file("pages/missing.md")
    write_page(logseq_root, "pages/template.md", "{{ .Body }}")
    with pytest.raises(ValidationError):
        await sync_service.force_update_db_from_file("pages/template.md")
    with pytest.raises(EntityNotFoundError):
        await sync_service.force_db_by_entity("7f1c3a5e-0000-4000-8000-000000000001")


@pytest.mark.asyncio
async def test_force_file_from_db_overrides_conflict(
    sync_service: LogseqSyncService, make_entity, logseq_root: Path
):
    last_sync = utc_now() - timedelta(hours=2)
    edited_at = last_sync + timedelta(hours=1)
    entity = await make_entity(
        "raft",
        entity_type="concept",
        properties={
            "page_path": "pages/raft.md",
            "last_sync_at": format_timestamp(last_sync),
            "content": "# Raft\n\nEdited in the app.\n",
        },
        timestamp=edited_at,
    )
    write_page(logseq_root, "pages/raft.md", RAFT, modified_at=edited_at)

    written, page_path = await sync_service.force_update_file_from_db(entity.entity_id)

    assert page_path == "pages/raft.md"
    text = (logseq_root / "pages/raft.md").read_text(encoding="utf-8")
    assert text.endswith("# Raft\n\nEdited in the app.\n")
    assert f"id: {entity.entity_id}" in text
    assert written.last_sync_at != format_timestamp(last_sync)


@pytest.mark.asyncio
async def test_force_file_requires_a_page_path(sync_service: LogseqSyncService, make_entity):
    entity = await make_entity("No Page")
    with pytest.raises(ValidationError):
        await sync_service.force_update_file_from_db(entity.entity_id)
    with pytest.raises(EntityNotFoundError):
        await sync_service.force_update_file_from_db("7f1c3a5e-0000-4000-8000-000000000001")


def git(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout.strip()


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
@pytest.mark.asyncio
async def test_pull_reports_changed_pages(
    app_config,
    entity_repository: EntityRepository,
    reference_service,
    sync_lock: SyncLock,
    logseq_root: Path,
    tmp_path: Path,
    monkeypatch,
):
    for name in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(name, "Garden Test")
    for name in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(name, "garden@example.com")

    write_page(logseq_root, "pages/raft.md", RAFT)
    git(logseq_root, "init", "-q")
    git(logseq_root, "add", ".")
    git(logseq_root, "commit", "-q", "-m", "seed")
    branch = git(logseq_root, "rev-parse", "--abbrev-ref", "HEAD")

    upstream = tmp_path / "upstream"
    git(tmp_path, "clone", "-q", str(logseq_root), str(upstream))
    write_page(upstream, "pages/paxos.md", "# Paxos\n\nPart-time parliament.\n")
    write_page(upstream, "logseq/config.md", "ignored\n")
    git(upstream, "add", ".")
    git(upstream, "commit", "-q", "-m", "add paxos")

    git(logseq_root, "remote", "add", "origin", str(upstream))
    git(logseq_root, "fetch", "-q", "origin")
    git(logseq_root, "branch", "-q", f"--set-upstream-to=origin/{branch}", branch)

    config = app_config.model_copy(update={"logseq_git_pull": True, "logseq_git_push": False})
    sync_service = LogseqSyncService(config, entity_repository, reference_service, lock=sync_lock)

    stats = await sync_service.synchronize()

    assert stats.errors == []
    assert stats.pages_pulled == ["pages/paxos.md"]
    assert stats.entities_created == 2
    assert await entity_repository.get_by_page_path("pages/paxos.md") is not None
