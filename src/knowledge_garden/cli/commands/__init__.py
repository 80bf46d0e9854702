"""CLI commands for knowledge-garden."""

from knowledge_garden.cli.commands import search, serve, sync

__all__ = ["search", "serve", "sync"]
