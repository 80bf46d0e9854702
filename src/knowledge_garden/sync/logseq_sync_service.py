"""Bidirectional reconciliation between the entity store and a Logseq graph."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from loguru import logger

from knowledge_garden.config import GardenConfig
from knowledge_garden.markdown import logseq_codec
from knowledge_garden.markdown.logseq_codec import LogseqPage
from knowledge_garden.models.knowledge import LAST_SYNC_PROPERTY, PAGE_PATH_PROPERTY, Entity
from knowledge_garden.repository.entity_repository import EntityRepository
from knowledge_garden.schemas.sync import (
    EntitySummary,
    MissingInDbItem,
    MissingInGitItem,
    OutOfSyncItem,
    SyncCheckResponse,
)
from knowledge_garden.services.exceptions import (
    EntityNotFoundError,
    GardenError,
    SnapshotError,
    ValidationError,
)
from knowledge_garden.services.reference_service import LOGSEQ_PAGE_SOURCE, ReferenceService
from knowledge_garden.sync.classification import SyncPair, SyncState, classify
from knowledge_garden.sync.git_gateway import GitWorktree
from knowledge_garden.sync.lock import SYNC_LOCK, SyncLock
from knowledge_garden.utils import format_timestamp, utc_now


@dataclass
class SyncStats:
    """Counters for one run. pages_* count files, entities_* count entities."""

    pages_processed: int = 0
    pages_created: int = 0
    pages_updated: int = 0
    pages_skipped: int = 0
    entities_processed: int = 0
    entities_created: int = 0
    entities_updated: int = 0
    entities_skipped: int = 0
    # Page paths the git pull brought in or changed
    pages_pulled: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class Snapshot:
    """Both sides of the graph at the start of a run, already paired."""

    pairs: List[SyncPair] = field(default_factory=list)
    # Files that exist but could not be used; entities linked to them are left alone
    rejected: Dict[str, str] = field(default_factory=dict)
    entity_count: int = 0


class LogseqSyncService:
    """Keeps entities and Logseq page files consistent.

    The database is authoritative for structured fields and the page file for
    body prose. Every run and forced override holds the process-wide sync lock.
    """

    def __init__(
        self,
        app_config: GardenConfig,
        entity_repository: EntityRepository,
        reference_service: ReferenceService,
        worktree: Optional[GitWorktree] = None,
        lock: SyncLock = SYNC_LOCK,
    ):
        self.app_config = app_config
        self.entity_repository = entity_repository
        self.reference_service = reference_service
        self.lock = lock
        if worktree is None and app_config.logseq_root is not None:
            worktree = GitWorktree(
                app_config.logseq_root,
                exclude_prefixes=app_config.logseq_exclude_prefixes,
                repo_url=app_config.logseq_repo_url,
                ssh_key_path=app_config.logseq_ssh_key_path,
            )
        self._worktree = worktree

    @property
    def worktree(self) -> GitWorktree:
        if self._worktree is None:
            raise SnapshotError("Logseq root is not configured (set LOGSEQ_ROOT)")
        return self._worktree

    @property
    def skew(self) -> float:
        return self.app_config.sync_clock_skew_seconds

    # --- full runs ---

    async def synchronize(self, cancel: Optional[asyncio.Event] = None) -> SyncStats:
        """Reconcile every pair and return the run's counters.

        Per-pair failures are collected in SyncStats.errors. If cancel fires the
        pair in flight is finished and the partial counters are returned.

        Raises:
            SyncInProgressError: Another run or override holds the lock
            SnapshotError: Files or entities could not be listed
        """
        async with self.lock.hold("synchronize"):
            start_time = time.time()
            stats = SyncStats()
            worktree = self.worktree

            if self.app_config.logseq_git_pull:
                await self._pull(worktree, stats)

            snapshot = await self._snapshot(stats)
            stats.entities_processed = snapshot.entity_count
            stats.pages_skipped += len(snapshot.rejected)

            synced_pages: List[tuple[str, str]] = []
            for index, pair in enumerate(snapshot.pairs):
                if cancel is not None and cancel.is_set():
                    stats.cancelled = True
                    logger.info(f"Sync cancelled: remaining_pairs={len(snapshot.pairs) - index}")
                    break
                try:
                    result = await self._reconcile_pair(pair, stats)
                except Exception as e:
                    logger.error(f"Failed to sync page: page_path={pair.page_path} error={e}")
                    stats.errors.append(f"{pair.page_path}: {e}")
                    continue
                if result is not None:
                    synced_pages.append(result)

            await self._sync_references(synced_pages, stats)

            if self.app_config.logseq_git_push and not stats.cancelled:
                try:
                    await worktree.commit_and_push(push=True)
                except GardenError as e:
                    stats.errors.append(f"git push: {e.message}")

            duration_ms = int((time.time() - start_time) * 1000)
            logger.info(
                f"Sync completed: pages_processed={stats.pages_processed} "
                f"pages_created={stats.pages_created} pages_updated={stats.pages_updated} "
                f"entities_created={stats.entities_created} "
                f"entities_updated={stats.entities_updated} "
                f"errors={len(stats.errors)} cancelled={stats.cancelled} duration_ms={duration_ms}"
            )
            return stats

    async def perform_hard_sync_check(self) -> SyncCheckResponse:
        """Classify every pair without touching either side."""
        snapshot = await self._snapshot(SyncStats())
        report = SyncCheckResponse()
        for pair in snapshot.pairs:
            state = classify(pair, self.skew)
            if state == SyncState.IN_SYNC:
                continue
            if state == SyncState.NEW_FILE and pair.file is not None:
                fields = logseq_codec.entity_fields_from_page(pair.file)
                report.missing_in_db.append(
                    MissingInDbItem(
                        page_path=pair.page_path, name=fields["name"], type=fields["type"]
                    )
                )
            if state in (SyncState.NEW_ENTITY, SyncState.ORPHAN_ENTITY) and pair.entity is not None:
                report.missing_in_git.append(
                    MissingInGitItem(entity=_summary(pair.entity), page_path=pair.page_path)
                )
            report.out_of_sync.append(
                OutOfSyncItem(
                    entity=_summary(pair.entity) if pair.entity else None,
                    page_path=pair.page_path,
                    state=state.value,
                    last_sync_db=pair.last_sync_db,
                    last_sync_git=pair.last_sync_git,
                    file_modified_at=pair.file.last_modified if pair.file else None,
                    entity_updated_at=pair.entity.updated_at if pair.entity else None,
                )
            )
        logger.info(
            f"Hard sync check: missing_in_db={len(report.missing_in_db)} "
            f"missing_in_git={len(report.missing_in_git)} out_of_sync={len(report.out_of_sync)}"
        )
        return report

    # --- forced overrides ---

    async def force_update_file_from_db(self, entity_id: str) -> tuple[Entity, str]:
        """Rewrite an entity's page whatever its state. Returns the entity and its page_path."""
        async with self.lock.hold("force-git"):
            entity = await self.entity_repository.get_live(entity_id)
            if entity is None:
                raise EntityNotFoundError(f"Entity not found: {entity_id}", field="entity_id")
            if not entity.page_path:
                raise ValidationError(
                    f"Entity {entity_id} has no page_path to write", field="entity_id"
                )
            entity, page = await self._write_page(entity, entity.page_path)
            await self.reference_service.sync_references(
                LOGSEQ_PAGE_SOURCE, entity.entity_id, page.body
            )
            logger.info(f"Forced file from db: entity_id={entity_id} page_path={entity.page_path}")
            return entity, page.page_path

    async def force_update_db_from_file(self, page_path: str) -> Entity:
        """Upsert the entity described by a page file whatever its state.

        The entity is matched by page_path, then by front-matter id, then by
        (name, type); with no match a new entity is created.
        """
        async with self.lock.hold("force-db"):
            page = await self._read_page(page_path)
            fields = logseq_codec.entity_fields_from_page(page)
            entity = await self.entity_repository.get_by_page_path(page_path)
            if entity is None and page.entity_id:
                entity = await self.entity_repository.get_live(page.entity_id)
            if entity is None:
                entity = await self.entity_repository.get_by_name_and_type(
                    fields["name"], fields["type"]
                )
            entity = await self._apply_page(page, entity)
            await self.reference_service.sync_references(
                LOGSEQ_PAGE_SOURCE, entity.entity_id, page.body
            )
            logger.info(f"Forced db from file: page_path={page_path} entity_id={entity.entity_id}")
            return entity

    async def force_db_by_entity(self, entity_id: str) -> Entity:
        """force_update_db_from_file for the page recorded on an entity."""
        entity = await self.entity_repository.get_live(entity_id)
        if entity is None:
            raise EntityNotFoundError(f"Entity not found: {entity_id}", field="entity_id")
        if not entity.page_path:
            raise ValidationError(f"Entity {entity_id} has no page_path", field="entity_id")
        return await self.force_update_db_from_file(entity.page_path)

    # --- snapshot ---

    async def _snapshot(self, stats: SyncStats) -> Snapshot:
        worktree = self.worktree
        try:
            files = await worktree.list_pages()
            entities = await self.entity_repository.list_sync_candidates(
                self.app_config.logseq_entity_types
            )
            deleted = await self.entity_repository.list_deleted()
        except GardenError:
            raise
        except Exception as e:
            logger.error(f"Sync snapshot failed: {e}")
            raise SnapshotError(f"Cannot list Logseq pages or entities: {e}") from e

        snapshot = Snapshot(entity_count=len(entities))
        pages: Dict[str, LogseqPage] = {}
        for page_file in files:
            stats.pages_processed += 1
            try:
                text, modified_at = await worktree.read_page(page_file.page_path)
            except Exception as e:
                logger.error(f"Cannot read page: page_path={page_file.page_path} error={e}")
                snapshot.rejected[page_file.page_path] = str(e)
                stats.errors.append(f"{page_file.page_path}: cannot read: {e}")
                continue
            if logseq_codec.contains_template_placeholders(text):
                logger.warning(f"Skipping template page: page_path={page_file.page_path}")
                snapshot.rejected[page_file.page_path] = "template"
                stats.errors.append(
                    f"{page_file.page_path}: contains unrendered template placeholders"
                )
                continue
            pages[page_file.page_path] = logseq_codec.parse(text, page_file.page_path, modified_at)

        snapshot.pairs = await self._pair(pages, entities, deleted, snapshot.rejected)
        return snapshot

    async def _pair(
        self,
        pages: Dict[str, LogseqPage],
        entities: Sequence[Entity],
        deleted: Sequence[Entity],
        rejected: Dict[str, str],
    ) -> List[SyncPair]:
        by_path = {e.page_path: e for e in entities if e.page_path}
        by_id = {e.entity_id: e for e in entities}
        tombstones_by_path: Dict[str, Entity] = {}
        for tombstone in deleted:
            if tombstone.page_path:
                # Ordered by deleted_at, so the latest deletion wins
                tombstones_by_path[tombstone.page_path] = tombstone
        tombstones_by_id = {e.entity_id: e for e in deleted}

        claimed: Set[str] = set()
        pairs: List[SyncPair] = []
        for page_path, page in pages.items():
            entity = by_path.get(page_path)
            if entity is None and page.entity_id:
                entity = await self._follow_rename(page, by_id, pages, claimed)
            if entity is not None:
                claimed.add(entity.entity_id)
                pairs.append(SyncPair(page_path=page_path, file=page, entity=entity))
                continue
            tombstone = tombstones_by_path.get(page_path) or tombstones_by_id.get(
                page.entity_id or ""
            )
            pairs.append(SyncPair(page_path=page_path, file=page, tombstone=tombstone))

        taken = set(pages) | set(rejected) | set(by_path)
        for entity in entities:
            if entity.entity_id in claimed:
                continue
            if entity.page_path in rejected:
                continue
            page_path = entity.page_path or self._new_page_path(entity, taken)
            taken.add(page_path)
            pairs.append(SyncPair(page_path=page_path, entity=entity))
        return pairs

    async def _follow_rename(
        self,
        page: LogseqPage,
        by_id: Dict[str, Entity],
        pages: Dict[str, LogseqPage],
        claimed: Set[str],
    ) -> Optional[Entity]:
        """Entity named by a page's front-matter id, if that entity lost its file."""
        entity_id = page.entity_id
        assert entity_id is not None
        entity = by_id.get(entity_id) or await self.entity_repository.get_live(entity_id)
        if entity is None or entity.entity_id in claimed:
            return None
        if entity.page_path and entity.page_path in pages:
            return None
        return entity

    @staticmethod
    def _new_page_path(entity: Entity, taken: Set[str]) -> str:
        stem = logseq_codec.sanitize_filename(entity.name)
        page_path = f"pages/{stem}.md"
        if page_path in taken:
            page_path = f"pages/{stem}_{entity.entity_id[:8]}.md"
        return page_path

    # --- transitions ---

    async def _reconcile_pair(
        self, pair: SyncPair, stats: SyncStats
    ) -> Optional[tuple[str, str]]:
        """Execute the transition for one pair.

        Returns (entity_id, body) when the page body should be scanned for references.
        """
        state = classify(pair, self.skew)
        logger.debug(f"Sync pair: page_path={pair.page_path} state={state.value}")

        if state == SyncState.NEW_FILE:
            assert pair.file is not None
            entity = await self._apply_page(pair.file, None)
            stats.entities_created += 1
            return entity.entity_id, pair.file.body

        if state == SyncState.FILE_NEWER:
            assert pair.file is not None
            entity = await self._apply_page(pair.file, pair.entity)
            stats.entities_updated += 1
            return entity.entity_id, pair.file.body

        if state in (SyncState.NEW_ENTITY, SyncState.ORPHAN_ENTITY):
            assert pair.entity is not None
            entity, page = await self._write_page(pair.entity, pair.page_path)
            stats.pages_created += 1
            return entity.entity_id, page.body

        if state == SyncState.DB_NEWER:
            assert pair.entity is not None
            entity, page = await self._write_page(pair.entity, pair.page_path)
            stats.pages_updated += 1
            return entity.entity_id, page.body

        if state == SyncState.IN_SYNC:
            assert pair.entity is not None and pair.file is not None
            stats.pages_skipped += 1
            stats.entities_skipped += 1
            return pair.entity.entity_id, pair.file.body

        if state == SyncState.CONFLICT:
            stats.pages_skipped += 1
            stats.entities_skipped += 1
            logger.warning(f"Sync conflict: page_path={pair.page_path}")
            stats.errors.append(
                f"{pair.page_path}: conflict, file and entity both changed since last sync"
            )
            return None

        # ORPHAN_FILE
        stats.pages_skipped += 1
        tombstone_id = pair.tombstone.entity_id if pair.tombstone else "unknown"
        logger.warning(f"Orphan page: page_path={pair.page_path} deleted_entity={tombstone_id}")
        stats.errors.append(
            f"{pair.page_path}: orphan page, entity {tombstone_id} was deleted"
        )
        return None

    async def _apply_page(self, page: LogseqPage, entity: Optional[Entity]) -> Entity:
        """Create or update an entity from a page, stamping the sync marker in the same write."""
        now = utc_now()
        if page.last_modified is not None and page.last_modified > now:
            now = page.last_modified
        fields = logseq_codec.entity_fields_from_page(page)
        fields["properties"][LAST_SYNC_PROPERTY] = format_timestamp(now)

        if entity is not None:
            updated = await self.entity_repository.update_entity(
                entity.entity_id, {**fields, "updated_at": now}
            )
            if updated is None:
                raise EntityNotFoundError(f"Entity disappeared during sync: {entity.entity_id}")
            logger.debug(
                f"Updated entity from page: entity_id={entity.entity_id} page_path={page.page_path}"
            )
            return updated

        entity_id = page.entity_id
        if entity_id and await self.entity_repository.find_by_id(entity_id) is not None:
            # The id already belongs to another entity; this file is a copy
            entity_id = None
        created = await self.entity_repository.create_entity(
            name=fields["name"],
            entity_type=fields["type"],
            description=fields["description"],
            properties=fields["properties"],
            entity_id=entity_id,
            timestamp=now,
        )
        logger.debug(
            f"Created entity from page: entity_id={created.entity_id} page_path={page.page_path}"
        )
        return created

    async def _write_page(self, entity: Entity, page_path: str) -> tuple[Entity, LogseqPage]:
        """Emit an entity's page and record the link and sync marker on the entity."""
        now = utc_now()
        page = logseq_codec.page_from_entity(entity, page_path, format_timestamp(now))
        modified_at = await self.worktree.write_page(page_path, logseq_codec.emit(page))
        if modified_at > now:
            now = modified_at

        properties = dict(entity.properties or {})
        properties[logseq_codec.BODY_PROPERTY] = page.body
        properties[PAGE_PATH_PROPERTY] = page_path
        properties[LAST_SYNC_PROPERTY] = format_timestamp(now)
        updated = await self.entity_repository.update_entity(
            entity.entity_id, {"properties": properties, "updated_at": now}
        )
        if updated is None:
            raise EntityNotFoundError(f"Entity disappeared during sync: {entity.entity_id}")
        logger.debug(f"Wrote page from entity: entity_id={entity.entity_id} page_path={page_path}")
        return updated, page

    async def _read_page(self, page_path: str) -> LogseqPage:
        text, modified_at = await self.worktree.read_page(page_path)
        if logseq_codec.contains_template_placeholders(text):
            raise ValidationError(
                f"Page contains unrendered template placeholders: {page_path}", field="page_path"
            )
        return logseq_codec.parse(text, page_path, modified_at)

    # --- references and git ---

    async def _sync_references(self, synced_pages: List[tuple[str, str]], stats: SyncStats) -> None:
        for entity_id, body in synced_pages:
            try:
                await self.reference_service.sync_references(LOGSEQ_PAGE_SOURCE, entity_id, body)
            except Exception as e:
                logger.error(f"Failed to sync references: entity_id={entity_id} error={e}")
                stats.errors.append(f"references for {entity_id}: {e}")

    async def _pull(self, worktree: GitWorktree, stats: SyncStats) -> None:
        try:
            await worktree.ensure_checkout()
            before = await worktree.head()
            if await worktree.pull() and before:
                stats.pages_pulled = [
                    page_path
                    for page_path in await worktree.changed_pages(before)
                    if not worktree.is_excluded(page_path)
                ]
                logger.info(f"Pulled Logseq graph: changed_pages={len(stats.pages_pulled)}")
        except GardenError as e:
            stats.errors.append(f"git pull: {e.message}")


def _summary(entity: Entity) -> EntitySummary:
    return EntitySummary(
        entity_id=entity.entity_id,
        name=entity.name,
        type=entity.type,
        description=entity.description,
    )
