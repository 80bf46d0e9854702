"""knowledge-garden HTTP API."""
