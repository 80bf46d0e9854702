"""Entry point for the garden CLI."""

from knowledge_garden.cli.app import app

# Register commands
import knowledge_garden.cli.commands  # noqa: F401  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    app()
