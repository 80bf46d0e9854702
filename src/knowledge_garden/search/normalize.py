"""Text normalization for search queries and indexed fields."""

import re
import unicodedata
from dataclasses import dataclass

STOP_TOKENS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "by",
        "for",
        "from",
        "how",
        "in",
        "is",
        "it",
        "of",
        "on",
        "or",
        "our",
        "the",
        "their",
        "this",
        "to",
        "was",
        "we",
        "what",
        "when",
        "where",
        "who",
        "why",
        "with",
        "you",
        "your",
    }
)

_WHITESPACE = re.compile(r"\s+")
_TOKEN = re.compile(r"\w+")


@dataclass(frozen=True)
class NormalizedQuery:
    """A query after normalization.

    text keeps every word (substring matching needs the phrase as typed);
    tokens drop stop tokens unless nothing else is left.
    """

    raw: str
    text: str
    tokens: tuple[str, ...]

    @property
    def is_empty(self) -> bool:
        return not self.text


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: str | None) -> str:
    """Case-fold, strip diacritics and collapse whitespace.

    >>> normalize_text("  Café   Crème ")
    'cafe creme'
    """
    if not value:
        return ""
    folded = strip_diacritics(value.casefold())
    return _WHITESPACE.sub(" ", folded).strip()


def tokenize(value: str | None) -> list[str]:
    return _TOKEN.findall(normalize_text(value))


def normalize_query(query: str) -> NormalizedQuery:
    text = normalize_text(query)
    all_tokens = _TOKEN.findall(text)

    deduped: list[str] = []
    seen: set[str] = set()
    for token in all_tokens:
        if token in seen:
            continue
        seen.add(token)
        deduped.append(token)

    pruned = [token for token in deduped if token not in STOP_TOKENS]
    return NormalizedQuery(raw=query, text=text, tokens=tuple(pruned or deduped))
