"""Sync pairs and the state each one is in."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from knowledge_garden.markdown.logseq_codec import LogseqPage, entity_fingerprint, page_fingerprint
from knowledge_garden.models.knowledge import Entity
from knowledge_garden.utils import parse_timestamp


class SyncState(str, Enum):
    NEW_FILE = "NEW_FILE"
    NEW_ENTITY = "NEW_ENTITY"
    IN_SYNC = "IN_SYNC"
    FILE_NEWER = "FILE_NEWER"
    DB_NEWER = "DB_NEWER"
    CONFLICT = "CONFLICT"
    ORPHAN_FILE = "ORPHAN_FILE"
    ORPHAN_ENTITY = "ORPHAN_ENTITY"


@dataclass
class SyncPair:
    """A page path with the file and entity found for it, either possibly missing.

    tombstone is a deleted entity that used to own the page; it turns a lone
    file into an orphan instead of a new page.
    """

    page_path: str
    file: Optional[LogseqPage] = None
    entity: Optional[Entity] = None
    tombstone: Optional[Entity] = None

    @property
    def last_sync_db(self) -> Optional[datetime]:
        return parse_timestamp(self.entity.last_sync_at) if self.entity else None

    @property
    def last_sync_git(self) -> Optional[datetime]:
        return parse_timestamp(self.file.last_sync_at) if self.file else None


def classify(pair: SyncPair, clock_skew_seconds: float = 2.0) -> SyncState:
    """Decide which transition a pair needs.

    Timestamps are compared with a tolerance of clock_skew_seconds. A pair
    where both sides changed after the entity's last-sync marker is a conflict
    whatever the contents; otherwise the newer side wins, and equal contents
    within tolerance are in sync.
    """
    if pair.file is not None and pair.entity is None:
        return SyncState.ORPHAN_FILE if pair.tombstone is not None else SyncState.NEW_FILE
    if pair.entity is not None and pair.file is None:
        return SyncState.ORPHAN_ENTITY if pair.entity.page_path else SyncState.NEW_ENTITY
    if pair.entity is None or pair.file is None:
        raise ValueError(f"Empty sync pair: {pair.page_path}")

    # Trigger: file found through its front-matter id under a new path
    # Why: the entity still points at the old location
    # Outcome: take the file as authoritative, which relinks page_path
    if pair.entity.page_path != pair.page_path:
        return SyncState.FILE_NEWER

    skew = timedelta(seconds=clock_skew_seconds)
    modified = pair.file.last_modified
    updated = pair.entity.updated_at
    if modified is None:
        return SyncState.DB_NEWER

    last_sync = pair.last_sync_db
    file_changed = last_sync is not None and modified > last_sync + skew
    entity_changed = last_sync is not None and updated > last_sync + skew
    if file_changed and entity_changed:
        return SyncState.CONFLICT

    same_content = page_fingerprint(pair.file) == entity_fingerprint(pair.entity)
    if same_content and modified <= updated + skew:
        return SyncState.IN_SYNC
    if modified > updated + skew:
        return SyncState.FILE_NEWER
    if updated > modified + skew:
        return SyncState.DB_NEWER
    # Contents differ within tolerance: the side that moved since the last sync wins
    return SyncState.DB_NEWER if entity_changed else SyncState.FILE_NEWER
