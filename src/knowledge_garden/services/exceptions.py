"""Service-layer exceptions.

Each class carries the HTTP status and error code the API layer reports for it.
"""

from typing import Optional


class GardenError(Exception):
    """Base exception for knowledge-garden services."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = "", field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(GardenError):
    """Raised when a request value is missing or malformed."""

    status_code = 400
    error = "validation_error"


class NotFoundError(GardenError):
    status_code = 404
    error = "not_found"


class EntityNotFoundError(NotFoundError):
    """Raised when an entity cannot be found"""

    error = "entity_not_found"


class PageNotFoundError(NotFoundError):
    """Raised when a Logseq page file does not exist under the graph root."""

    error = "page_not_found"


class ConflictError(GardenError):
    status_code = 409
    error = "conflict"


class SyncInProgressError(ConflictError):
    """Raised when a sync run or forced override is already holding the sync lock."""

    error = "sync_in_progress"

    def __init__(self, message: str = "A Logseq sync is already in progress"):
        super().__init__(message)


class UpstreamUnavailableError(GardenError):
    status_code = 502
    error = "upstream_unavailable"


class EmbeddingProviderError(UpstreamUnavailableError):
    error = "embedding_provider_unavailable"


class LLMUnavailableError(UpstreamUnavailableError):
    error = "llm_unavailable"


class GitOperationError(UpstreamUnavailableError):
    """Raised when a git subprocess exits non-zero."""

    error = "git_unavailable"


class SnapshotError(GardenError):
    """Raised when a sync run cannot list files or entities."""

    error = "sync_snapshot_failed"


class OperationCancelledError(GardenError):
    """Raised when the caller's cancellation token fires."""

    status_code = 499
    error = "cancelled"
