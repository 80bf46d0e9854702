"""Database engine and session management."""

from contextlib import asynccontextmanager
from enum import Enum, auto
from pathlib import Path
from typing import AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from knowledge_garden.config import GardenConfig
from knowledge_garden.models import Base

# Module level state
_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseType(Enum):
    """Types of supported databases."""

    MEMORY = auto()
    FILESYSTEM = auto()

    @classmethod
    def get_db_url(cls, db_path: Path, db_type: "DatabaseType") -> str:
        if db_type == cls.MEMORY:
            logger.info("Using in-memory SQLite database")
            return "sqlite+aiosqlite://"
        return f"sqlite+aiosqlite:///{db_path}"


def _enable_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record):  # pragma: no cover
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _create_engine(db_url: str) -> AsyncEngine:
    if db_url.startswith("sqlite") and db_url.endswith("://"):
        # In-memory databases must share one connection or each session sees an empty db
        engine = create_async_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif db_url.startswith("sqlite"):
        engine = create_async_engine(db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_async_engine(db_url, pool_pre_ping=True)

    if db_url.startswith("sqlite"):
        _enable_sqlite_pragmas(engine)
    return engine


def _create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def scoped_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session context that commits on success and rolls back on error."""
    session = session_maker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def engine_session_factory(
    db_path: Path,
    db_type: DatabaseType = DatabaseType.MEMORY,
    db_url: Optional[str] = None,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    """Create an engine and session maker for the lifetime of the context.

    Also wires them into module state so get_or_create_db() returns the same
    pair while the context is open.
    """
    global _engine, _session_maker

    url = db_url or DatabaseType.get_db_url(db_path, db_type)
    _engine = _create_engine(url)
    _session_maker = _create_session_maker(_engine)
    try:
        yield _engine, _session_maker
    finally:
        if _engine:
            await _engine.dispose()
            _engine = None
            _session_maker = None


async def get_or_create_db(
    app_config: GardenConfig,
    db_type: DatabaseType = DatabaseType.FILESYSTEM,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Get or create the process-wide engine and session maker, creating tables."""
    global _engine, _session_maker

    if _engine is None:
        url = app_config.database_url or DatabaseType.get_db_url(
            app_config.database_path, db_type
        )
        _engine = _create_engine(url)
        _session_maker = _create_session_maker(_engine)
        await create_tables(_engine)
        logger.info(f"Database initialized: url={_engine.url.render_as_string(hide_password=True)}")

    assert _session_maker is not None
    return _engine, _session_maker


async def shutdown_db() -> None:
    """Dispose the process-wide engine."""
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_maker = None
