"""FastAPI application for knowledge-garden."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from knowledge_garden import __version__, db
from knowledge_garden.api.routers import entity_router, search_router, sync_router
from knowledge_garden.config import GardenConfig, get_config, init_api_logging
from knowledge_garden.providers import OllamaEmbeddingProvider, OllamaLLMProvider
from knowledge_garden.services.exceptions import GardenError


def _error_body(error: str, message: str, field: Optional[str] = None) -> dict:
    body = {"error": error, "message": message}
    if field:
        body["field"] = field
    return body


def _open_providers(app: FastAPI, app_config: GardenConfig) -> None:
    app.state.embedding_provider = None
    app.state.llm_provider = None
    if app_config.vector_provider_url:
        app.state.embedding_provider = OllamaEmbeddingProvider(
            app_config.vector_provider_url, app_config.embedding_model
        )
    if app_config.llm_provider_url:
        app.state.llm_provider = OllamaLLMProvider(
            app_config.llm_provider_url,
            app_config.llm_model,
            timeout=app_config.llm_timeout_seconds,
        )


async def _close_providers(app: FastAPI) -> None:
    for provider in (app.state.embedding_provider, app.state.llm_provider):
        if provider is not None:
            await provider.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    """Open the database and provider clients for the life of the app."""
    init_api_logging()
    app_config = get_config()
    logger.info(f"Starting knowledge-garden API: version={__version__} env={app_config.env}")

    _, session_maker = await db.get_or_create_db(app_config)
    app.state.session_maker = session_maker
    _open_providers(app, app_config)
    try:
        yield
    finally:
        await _close_providers(app)
        await db.shutdown_db()
        logger.info("knowledge-garden API stopped")


app = FastAPI(
    title="knowledge-garden",
    description="Unified search and Logseq sync for a personal knowledge garden",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(search_router.router)
app.include_router(sync_router.router)
app.include_router(entity_router.router)
app.include_router(entity_router.references_router)


@app.exception_handler(GardenError)
async def garden_error_handler(request: Request, exc: GardenError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error}: {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error, exc.message, exc.field),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = list(first.get("loc", ()))
    # The first element names where the value came from, not the field
    if loc and loc[0] in ("body", "query", "path", "header"):
        loc = loc[1:]
    field = str(loc[0]) if loc else None
    message = first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content=_error_body("validation_error", f"{field}: {message}" if field else message, field),
    )


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):  # pragma: no cover
    logger.exception(
        "API unhandled exception",
        url=str(request.url),
        method=request.method,
        client=request.client.host if request.client else None,
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500, content=_error_body("internal_error", "Internal server error")
    )
