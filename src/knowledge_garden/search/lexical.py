"""Lexical similarity: exact substring hits and normalized edit distance."""

from knowledge_garden.search.normalize import NormalizedQuery, normalize_text, tokenize


def levenshtein(a: str, b: str) -> int:
    """Classic two-row Levenshtein distance."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def ratio(a: str, b: str) -> float:
    """1 - distance / longest length, in [0, 1]."""
    if not a and not b:
        return 1.0
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


def substring_hit(query: NormalizedQuery, *fields: str | None) -> bool:
    """True when the whole normalized query occurs inside any field."""
    if query.is_empty:
        return False
    return any(query.text in normalize_text(field) for field in fields if field)


def fuzzy_similarity(query: NormalizedQuery, value: str | None) -> float:
    """Best of whole-string ratio and mean best per-token ratio.

    The per-token score lets "raft" match a title like "Notes on Rafting"
    without the rest of the title diluting it.
    """
    if query.is_empty or not value:
        return 0.0

    normalized = normalize_text(value)
    whole = ratio(query.text, normalized)

    words = tokenize(normalized)
    if not words or not query.tokens:
        return whole

    per_token = [max(ratio(token, word) for word in words) for token in query.tokens]
    return max(whole, sum(per_token) / len(per_token))
