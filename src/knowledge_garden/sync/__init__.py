"""Logseq graph synchronization."""

from knowledge_garden.sync.classification import SyncPair, SyncState, classify
from knowledge_garden.sync.git_gateway import GitWorktree
from knowledge_garden.sync.lock import SYNC_LOCK, SyncLock
from knowledge_garden.sync.logseq_sync_service import LogseqSyncService, SyncStats

__all__ = [
    "GitWorktree",
    "LogseqSyncService",
    "SYNC_LOCK",
    "SyncLock",
    "SyncPair",
    "SyncState",
    "SyncStats",
    "classify",
]
