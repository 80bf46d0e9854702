"""knowledge-garden - personal knowledge garden backend with unified search and Logseq sync."""

__version__ = "0.4.0"
