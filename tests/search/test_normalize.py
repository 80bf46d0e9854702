"""Tests for query normalization."""

from knowledge_garden.search.normalize import normalize_query, normalize_text, tokenize


def test_normalize_text_folds_case_and_diacritics():
    assert normalize_text("  Café   Crème ") == "cafe creme"
    assert normalize_text("STRASSE") == "strasse"
    assert normalize_text(None) == ""


def test_tokenize_splits_on_non_word_characters():
    assert tokenize("Raft-consensus, explained!") == ["raft", "consensus", "explained"]


def test_normalize_query_drops_stop_tokens_and_duplicates():
    query = normalize_query("What is the Raft raft protocol")
    assert query.text == "what is the raft raft protocol"
    assert query.tokens == ("raft", "protocol")


def test_normalize_query_keeps_stop_tokens_when_nothing_else_is_left():
    query = normalize_query("The Who")
    assert query.tokens == ("the", "who")


def test_empty_query():
    query = normalize_query("   ")
    assert query.is_empty
    assert query.tokens == ()
