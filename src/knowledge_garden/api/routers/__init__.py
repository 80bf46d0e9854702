"""API routers."""

from knowledge_garden.api.routers import entity_router, search_router, sync_router

__all__ = ["entity_router", "search_router", "sync_router"]
