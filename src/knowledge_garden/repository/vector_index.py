"""Nearest-neighbour lookups over stored embeddings.

Each (source_kind, strategy) corpus has its own sqlite-vec ``vec0`` table using
the cosine distance metric, so a KNN query returns ``1 - cos`` per chunk.
Chunk text and ownership live in the ``embedding_chunk`` table, joined on rowid.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import sqlite_vec
from loguru import logger
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import OperationalError as SAOperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.models.vector import (
    EmbeddingChunk,
    create_vector_table,
    vector_table_name,
)

# Chunks fetched per requested source, since several chunks may share a source
CHUNK_OVERSAMPLE = 4


@dataclass(frozen=True)
class VectorHit:
    source_id: str
    cosine: float
    chunk_text: str = ""

    @property
    def similarity(self) -> float:
        """Cosine mapped onto [0, 1] via (cos + 1) / 2."""
        return min(1.0, max(0.0, (self.cosine + 1.0) / 2.0))


class VectorIndex(Protocol):
    async def query(
        self, source_kind: str, strategy: str, vector: Sequence[float], top_k: int
    ) -> list[VectorHit]: ...


def distance_to_cosine(distance: float) -> float:
    """vec0 cosine distance is 1 - cos."""
    return 1.0 - distance


class SqlVectorIndex:
    """VectorIndex backed by sqlite-vec tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self._sqlite_vec_lock = asyncio.Lock()

    async def _ensure_sqlite_vec_loaded(self, session: AsyncSession) -> None:
        try:
            await session.execute(text("SELECT vec_version()"))
            return
        except SAOperationalError:
            pass

        async with self._sqlite_vec_lock:
            try:
                await session.execute(text("SELECT vec_version()"))
                return
            except SAOperationalError:
                pass

            async_connection = await session.connection()
            raw_connection = await async_connection.get_raw_connection()
            driver_connection = raw_connection.driver_connection
            await driver_connection.enable_load_extension(True)
            await driver_connection.load_extension(sqlite_vec.loadable_path())
            await driver_connection.enable_load_extension(False)
            await session.execute(text("SELECT vec_version()"))

    async def _vector_table_sql(self, session: AsyncSession, table_name: str) -> Optional[str]:
        result = await session.execute(
            text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"),
            {"name": table_name},
        )
        return result.scalar()

    async def query(
        self, source_kind: str, strategy: str, vector: Sequence[float], top_k: int
    ) -> list[VectorHit]:
        """Top-k sources by best chunk cosine, highest first."""
        if top_k <= 0 or not vector:
            return []
        table_name = vector_table_name(source_kind, strategy)

        async with db.scoped_session(self.session_maker) as session:
            await self._ensure_sqlite_vec_loaded(session)
            table_sql = await self._vector_table_sql(session, table_name)
            if table_sql is None:
                return []
            if f"float[{len(vector)}]" not in table_sql:
                logger.warning(
                    f"Query vector dimension does not match index: "
                    f"source_kind={source_kind} strategy={strategy} dims={len(vector)}"
                )
                return []

            result = await session.execute(
                text(
                    "WITH vector_matches AS ("
                    "  SELECT rowid, distance "
                    f"  FROM {table_name} "
                    "  WHERE embedding MATCH :query_embedding "
                    "    AND k = :vector_k"
                    ") "
                    "SELECT c.source_id, c.content, vector_matches.distance AS distance "
                    "FROM vector_matches "
                    "JOIN embedding_chunk c ON c.id = vector_matches.rowid "
                    "ORDER BY distance ASC"
                ),
                {
                    "query_embedding": json.dumps([float(x) for x in vector]),
                    "vector_k": top_k * CHUNK_OVERSAMPLE,
                },
            )
            rows = result.mappings().all()

        best: dict[str, VectorHit] = {}
        for row in rows:
            cosine = distance_to_cosine(row["distance"])
            current = best.get(row["source_id"])
            if current is None or cosine > current.cosine:
                best[row["source_id"]] = VectorHit(
                    source_id=row["source_id"], cosine=cosine, chunk_text=row["content"]
                )

        hits = sorted(best.values(), key=lambda hit: (-hit.cosine, hit.source_id))
        return hits[:top_k]

    async def _ensure_vector_table(
        self, session: AsyncSession, source_kind: str, strategy: str, dimensions: int
    ) -> str:
        table_name = vector_table_name(source_kind, strategy)
        table_sql = await self._vector_table_sql(session, table_name)
        if table_sql and f"float[{dimensions}]" not in table_sql:
            logger.warning(
                f"Embedding dimension mismatch, recreating {table_name}: "
                f"source_kind={source_kind} strategy={strategy} dims={dimensions}"
            )
            await session.execute(text(f"DROP TABLE IF EXISTS {table_name}"))
            await session.execute(
                delete(EmbeddingChunk).where(
                    EmbeddingChunk.source_kind == source_kind,
                    EmbeddingChunk.strategy == strategy,
                )
            )
        await session.execute(create_vector_table(table_name, dimensions))
        return table_name

    async def replace_source(
        self,
        source_kind: str,
        source_id: str,
        strategy: str,
        chunks: Sequence[tuple[str, Sequence[float]]],
    ) -> int:
        """Replace all chunks of one source under one strategy.

        Every chunk must share one dimension. Writing a dimension that differs
        from the existing table rebuilds the (source_kind, strategy) corpus.
        """
        dimensions = {len(vector) for _, vector in chunks}
        if len(dimensions) > 1:
            raise ValueError(f"Chunks of one source must share a dimension: {sorted(dimensions)}")

        async with db.scoped_session(self.session_maker) as session:
            await self._ensure_sqlite_vec_loaded(session)
            table_name = vector_table_name(source_kind, strategy)
            if await self._vector_table_sql(session, table_name):
                # vec0 has no cascade, so vectors go before their chunk rows
                await session.execute(
                    text(
                        f"DELETE FROM {table_name} WHERE rowid IN ("
                        "SELECT id FROM embedding_chunk "
                        "WHERE source_kind = :source_kind AND source_id = :source_id "
                        "AND strategy = :strategy)"
                    ),
                    {"source_kind": source_kind, "source_id": source_id, "strategy": strategy},
                )
            await session.execute(
                delete(EmbeddingChunk).where(
                    EmbeddingChunk.source_kind == source_kind,
                    EmbeddingChunk.source_id == source_id,
                    EmbeddingChunk.strategy == strategy,
                )
            )
            if not chunks:
                return 0

            table_name = await self._ensure_vector_table(
                session, source_kind, strategy, dimensions.pop()
            )
            rows = [
                EmbeddingChunk(
                    source_kind=source_kind,
                    source_id=source_id,
                    strategy=strategy,
                    chunk_index=index,
                    content=content,
                    dimensions=len(vector),
                )
                for index, (content, vector) in enumerate(chunks)
            ]
            session.add_all(rows)
            await session.flush()

            await session.execute(
                text(f"INSERT INTO {table_name} (rowid, embedding) VALUES (:rowid, :embedding)"),
                [
                    {"rowid": row.id, "embedding": json.dumps([float(x) for x in vector])}
                    for row, (_, vector) in zip(rows, chunks, strict=True)
                ],
            )
        return len(chunks)

    async def count(self, source_kind: Optional[str] = None) -> int:
        query = select(func.count(EmbeddingChunk.id))
        if source_kind:
            query = query.where(EmbeddingChunk.source_kind == source_kind)
        async with db.scoped_session(self.session_maker) as session:
            return (await session.execute(query)).scalar_one()
