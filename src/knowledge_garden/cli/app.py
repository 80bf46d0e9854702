"""Root typer application for the garden CLI."""

from typing import Optional

import typer

from knowledge_garden import __version__
from knowledge_garden.config import init_cli_logging


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"knowledge-garden version: {__version__}")
        raise typer.Exit()


app = typer.Typer(name="garden", help="Search and Logseq sync for a personal knowledge garden")


@app.callback()
def app_callback(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """knowledge-garden command line interface"""
    init_cli_logging()
