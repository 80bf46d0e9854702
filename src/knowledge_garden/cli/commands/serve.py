"""Serve command: run the HTTP API with uvicorn."""

import typer
import uvicorn

from knowledge_garden.cli.app import app


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:  # pragma: no cover
    """Run the knowledge-garden API server."""
    uvicorn.run("knowledge_garden.api.app:app", host=host, port=port, reload=reload)
