"""Process-wide exclusive lock around the Logseq worktree."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from loguru import logger

from knowledge_garden.services.exceptions import SyncInProgressError


class SyncLock:
    """Non-blocking lock: a second holder fails fast instead of waiting."""

    def __init__(self) -> None:
        self._holder: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        if self._holder is not None:
            logger.warning(f"Sync lock busy: requested={operation} held_by={self._holder}")
            raise SyncInProgressError(
                f"A Logseq sync is already in progress ({self._holder})"
            )
        self._holder = operation
        try:
            yield
        finally:
            self._holder = None


SYNC_LOCK = SyncLock()
