"""Logseq page codec and [[reference]] parsing."""

from knowledge_garden.markdown.logseq_codec import LogseqPage, emit, parse
from knowledge_garden.markdown.references import ParsedReference, parse_entity_references

__all__ = [
    "LogseqPage",
    "ParsedReference",
    "emit",
    "parse",
    "parse_entity_references",
]
