"""Command line interface for knowledge-garden."""
