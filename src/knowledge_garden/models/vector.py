"""Embedding storage, one row per chunk, keyed by (source_kind, strategy).

Chunk rows carry the text and bookkeeping. The vectors themselves live in a
sqlite-vec ``vec0`` virtual table per (source_kind, strategy) whose rowid is
the chunk id.
"""

import re
from datetime import datetime

from sqlalchemy import DDL, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from knowledge_garden.models.base import Base
from knowledge_garden.utils import utc_now

VECTOR_TABLE_PREFIX = "vec_"


class EmbeddingChunk(Base):
    __tablename__ = "embedding_chunk"
    __table_args__ = (
        Index("ix_embedding_chunk_kind_strategy", "source_kind", "strategy"),
        Index("ix_embedding_chunk_source", "source_kind", "source_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_kind: Mapped[str] = mapped_column(String)
    source_id: Mapped[str] = mapped_column(String)
    strategy: Mapped[str] = mapped_column(String)
    chunk_index: Mapped[int] = mapped_column(Integer, default=0)
    content: Mapped[str] = mapped_column(Text, default="")
    dimensions: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    def __repr__(self) -> str:
        return (
            f"EmbeddingChunk({self.source_kind}:{self.source_id}, strategy={self.strategy!r}, "
            f"chunk={self.chunk_index}, dims={self.dimensions})"
        )


def vector_table_name(source_kind: str, strategy: str) -> str:
    """Name of the vec0 table holding one (source_kind, strategy) corpus."""
    slug = re.sub(r"[^a-z0-9_]+", "_", f"{source_kind}__{strategy}".lower()).strip("_")
    return f"{VECTOR_TABLE_PREFIX}{slug}"


def create_vector_table(table_name: str, dimensions: int) -> DDL:
    """sqlite-vec virtual table DDL for the given embedding dimension."""
    return DDL(
        f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {table_name}
USING vec0(embedding float[{dimensions}] distance_metric=cosine)
"""
    )
