"""Source adapters: one candidate producer per searchable kind.

Every adapter advertises the capabilities it implements. The unified ranker
only calls the passes an adapter advertises and treats the rest as zero
contribution.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Iterable, Optional, Sequence

from loguru import logger
from sqlalchemy import ColumnElement, String, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_garden import db
from knowledge_garden.models.sources import (
    Bookmark,
    BrowserHistory,
    Contact,
    Item,
    Message,
    Note,
    Room,
    Session,
)
from knowledge_garden.repository.vector_index import VectorIndex
from knowledge_garden.search.fusion import Candidate
from knowledge_garden.search.lexical import fuzzy_similarity, substring_hit
from knowledge_garden.search.normalize import NormalizedQuery
from knowledge_garden.search.recency import age_seconds
from knowledge_garden.utils import ensure_timezone_aware

SNIPPET_CHARS = 500


class Capability(str, Enum):
    EXACT_MATCH = "exact_match"
    FUZZY_MATCH = "fuzzy_match"
    VECTOR_QUERY = "vector_query"
    METADATA_LOOKUP = "metadata_lookup"


@dataclass(frozen=True)
class AdapterQuery:
    """Everything one adapter needs for one request."""

    query: NormalizedQuery
    now: datetime
    strategy: str
    vector: Optional[Sequence[float]] = None
    fuzzy_threshold: float = 0.55
    top_k: int = 50
    cap: int = 200
    fuzzy_scan_limit: int = 2000


class SourceAdapter(ABC):
    kind: ClassVar[str]

    @property
    @abstractmethod
    def capabilities(self) -> frozenset[Capability]: ...

    async def exact(self, request: AdapterQuery) -> list[Candidate]:
        raise NotImplementedError

    async def fuzzy(self, request: AdapterQuery) -> list[Candidate]:
        raise NotImplementedError

    async def vector(self, request: AdapterQuery) -> list[Candidate]:
        raise NotImplementedError

    async def lookup(self, ids: Iterable[str], now: datetime) -> list[Candidate]:
        raise NotImplementedError


def _snippet(value: Optional[str]) -> str:
    if not value:
        return ""
    value = value.strip()
    return value if len(value) <= SNIPPET_CHARS else value[:SNIPPET_CHARS].rstrip() + "..."


class SqlSourceAdapter(SourceAdapter):
    """Adapter over one ORM table.

    Subclasses declare the model, the columns searched by the exact pass, and
    how a row becomes a Candidate.
    """

    Model: ClassVar[Any]
    # Vectors are only indexed for some kinds
    indexes_vectors: ClassVar[bool] = False

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        vector_index: Optional[VectorIndex] = None,
    ):
        self.session_maker = session_maker
        self.vector_index = vector_index

    @property
    def capabilities(self) -> frozenset[Capability]:
        capabilities = {Capability.EXACT_MATCH, Capability.FUZZY_MATCH, Capability.METADATA_LOOKUP}
        if self.indexes_vectors and self.vector_index is not None:
            capabilities.add(Capability.VECTOR_QUERY)
        return frozenset(capabilities)

    # --- per-kind hooks ---

    @abstractmethod
    def exact_columns(self) -> list[Any]: ...

    @abstractmethod
    def title_of(self, row: Any) -> Optional[str]: ...

    @abstractmethod
    def text_of(self, row: Any) -> str: ...

    def exact_fields(self, row: Any) -> list[Optional[str]]:
        return [getattr(row, column.key) for column in self.exact_columns()]

    def fuzzy_fields(self, row: Any) -> list[Optional[str]]:
        """Short fields compared by edit distance, titles and names by default."""
        return [self.title_of(row)]

    def updated_column(self) -> Any:
        return self.Model.updated_at

    def timestamps(self, row: Any) -> tuple[Optional[datetime], Optional[datetime]]:
        return row.created_at, row.updated_at

    def extra_of(self, row: Any) -> dict[str, Any]:
        return {}

    # --- shared passes ---

    def to_candidate(self, row: Any, now: datetime) -> Candidate:
        created_at, updated_at = self.timestamps(row)
        created_at = ensure_timezone_aware(created_at) if created_at else None
        updated_at = ensure_timezone_aware(updated_at) if updated_at else created_at
        return Candidate(
            source_kind=self.kind,
            source_id=str(row.id),
            title=self.title_of(row),
            text=_snippet(self.text_of(row)),
            created_at=created_at,
            updated_at=updated_at,
            age_seconds=age_seconds(now, updated_at or created_at),
            extra=self.extra_of(row),
        )

    def _contains_any(self, query: NormalizedQuery) -> ColumnElement[bool]:
        # SQL lower() is ASCII-only and keeps accents, so the query as typed is tried too
        typed = " ".join(query.raw.casefold().split())
        return or_(
            *[
                func.lower(column, type_=String).contains(needle, autoescape=True)
                for column in self.exact_columns()
                for needle in sorted({query.text, typed})
            ]
        )

    async def _rows(self, query) -> Sequence[Any]:
        async with db.scoped_session(self.session_maker) as session:
            return (await session.execute(query)).scalars().all()

    async def exact(self, request: AdapterQuery) -> list[Candidate]:
        if request.query.is_empty:
            return []
        query = (
            select(self.Model)
            .where(self._contains_any(request.query))
            .order_by(self.updated_column().desc())
            .limit(request.cap)
        )
        candidates = []
        for row in await self._rows(query):
            # SQL lower() is ASCII-only; re-check with the full normalizer
            if not substring_hit(request.query, *self.exact_fields(row)):
                continue
            candidate = self.to_candidate(row, request.now)
            candidate.exact_hit = True
            candidate.lexical_similarity = 1.0
            candidates.append(candidate)
        return candidates

    async def fuzzy(self, request: AdapterQuery) -> list[Candidate]:
        if request.query.is_empty:
            return []
        query = (
            select(self.Model)
            .order_by(self.updated_column().desc())
            .limit(request.fuzzy_scan_limit)
        )
        scored: list[tuple[float, Any]] = []
        for row in await self._rows(query):
            similarity = max(
                (fuzzy_similarity(request.query, field) for field in self.fuzzy_fields(row)),
                default=0.0,
            )
            if similarity >= request.fuzzy_threshold:
                scored.append((similarity, row))

        scored.sort(key=lambda pair: (-pair[0], str(pair[1].id)))
        candidates = []
        for similarity, row in scored[: request.cap]:
            candidate = self.to_candidate(row, request.now)
            candidate.lexical_similarity = similarity
            candidates.append(candidate)
        return candidates

    async def vector(self, request: AdapterQuery) -> list[Candidate]:
        if self.vector_index is None or request.vector is None:
            return []
        hits = await self.vector_index.query(
            self.kind, request.strategy, request.vector, min(request.top_k, request.cap)
        )
        if not hits:
            return []

        found = await self.lookup([h.source_id for h in hits], request.now)
        by_id = {c.source_id: c for c in found}
        candidates = []
        for hit in hits:
            candidate = by_id.get(hit.source_id)
            if candidate is None:
                # Embedding outlived its source row
                logger.debug(f"Dangling vector hit: kind={self.kind} source_id={hit.source_id}")
                continue
            candidate.vector_similarity = hit.similarity
            candidates.append(candidate)
        return candidates

    async def lookup(self, ids: Iterable[str], now: datetime) -> list[Candidate]:
        ids = list(ids)
        if not ids:
            return []
        rows = await self._rows(select(self.Model).where(self.Model.id.in_(ids)))
        return [self.to_candidate(row, now) for row in rows]


class BookmarkAdapter(SqlSourceAdapter):
    kind = "bookmark"
    Model = Bookmark
    indexes_vectors = True

    def exact_columns(self) -> list[Any]:
        return [Bookmark.title, Bookmark.url, Bookmark.summary, Bookmark.content]

    def title_of(self, row: Bookmark) -> Optional[str]:
        return row.title or row.url

    def text_of(self, row: Bookmark) -> str:
        return row.summary or row.content or ""

    def extra_of(self, row: Bookmark) -> dict[str, Any]:
        return {"url": row.url, "summary": row.summary}


class NoteAdapter(SqlSourceAdapter):
    kind = "note"
    Model = Note
    indexes_vectors = True

    def exact_columns(self) -> list[Any]:
        return [Note.title, Note.content]

    def title_of(self, row: Note) -> Optional[str]:
        return row.title

    def text_of(self, row: Note) -> str:
        return row.content or ""

    def fuzzy_fields(self, row: Note) -> list[Optional[str]]:
        # Untitled notes are compared on their opening line
        if row.title:
            return [row.title]
        first_line = (row.content or "").strip().split("\n", 1)[0]
        return [first_line[:200]]


class ItemAdapter(SqlSourceAdapter):
    kind = "item"
    Model = Item
    indexes_vectors = True

    def exact_columns(self) -> list[Any]:
        return [Item.title, Item.contents]

    def title_of(self, row: Item) -> Optional[str]:
        return row.title

    def text_of(self, row: Item) -> str:
        return row.contents or ""

    def extra_of(self, row: Item) -> dict[str, Any]:
        return {"tags": row.tags or []}


class ContactAdapter(SqlSourceAdapter):
    kind = "contact"
    Model = Contact

    def exact_columns(self) -> list[Any]:
        return [Contact.name, Contact.email, Contact.notes]

    def title_of(self, row: Contact) -> Optional[str]:
        return row.name

    def text_of(self, row: Contact) -> str:
        return " ".join(part for part in (row.email, row.phone, row.notes) if part)

    def extra_of(self, row: Contact) -> dict[str, Any]:
        return {"email": row.email}


class BrowserHistoryAdapter(SqlSourceAdapter):
    kind = "browser_history"
    Model = BrowserHistory

    def exact_columns(self) -> list[Any]:
        return [BrowserHistory.title, BrowserHistory.url]

    def title_of(self, row: BrowserHistory) -> Optional[str]:
        return row.title or row.url

    def text_of(self, row: BrowserHistory) -> str:
        return row.url

    def updated_column(self) -> Any:
        return BrowserHistory.visited_at

    def timestamps(self, row: BrowserHistory) -> tuple[Optional[datetime], Optional[datetime]]:
        return row.created_at, row.visited_at

    def extra_of(self, row: BrowserHistory) -> dict[str, Any]:
        return {"url": row.url}


class RoomAdapter(SqlSourceAdapter):
    """Rooms, searched by name and topic plus the bodies of their messages."""

    kind = "room"
    Model = Room

    def exact_columns(self) -> list[Any]:
        return [Room.display_name, Room.topic]

    def title_of(self, row: Room) -> Optional[str]:
        return row.display_name

    def text_of(self, row: Room) -> str:
        return row.topic or ""

    async def exact(self, request: AdapterQuery) -> list[Candidate]:
        candidates = await super().exact(request)
        if request.query.is_empty or len(candidates) >= request.cap:
            return candidates[: request.cap]

        seen = {c.source_id for c in candidates}
        message_query = (
            select(Message)
            .where(
                func.lower(Message.body, type_=String).contains(
                    request.query.text, autoescape=True
                )
            )
            .order_by(Message.created_at.desc())
            .limit(request.cap * 5)
        )
        snippets: dict[str, str] = {}
        for message in await self._rows(message_query):
            if message.room_id in seen or message.room_id in snippets:
                continue
            if substring_hit(request.query, message.body):
                snippets[message.room_id] = message.body

        for candidate in await self.lookup(list(snippets), request.now):
            candidate.exact_hit = True
            candidate.lexical_similarity = 1.0
            candidate.text = _snippet(snippets[candidate.source_id])
            candidates.append(candidate)
        return candidates[: request.cap]


class SessionAdapter(SqlSourceAdapter):
    kind = "session"
    Model = Session
    indexes_vectors = True

    def exact_columns(self) -> list[Any]:
        return [Session.title, Session.summary]

    def title_of(self, row: Session) -> Optional[str]:
        return row.title

    def text_of(self, row: Session) -> str:
        return row.summary or ""

    def extra_of(self, row: Session) -> dict[str, Any]:
        return {"room_id": row.room_id}


ADAPTER_CLASSES: tuple[type[SqlSourceAdapter], ...] = (
    BookmarkAdapter,
    NoteAdapter,
    ItemAdapter,
    ContactAdapter,
    BrowserHistoryAdapter,
    RoomAdapter,
    SessionAdapter,
)


def build_source_adapters(
    session_maker: async_sessionmaker[AsyncSession],
    vector_index: Optional[VectorIndex] = None,
) -> list[SourceAdapter]:
    return [cls(session_maker, vector_index) for cls in ADAPTER_CLASSES]
