"""Search command: run the unified ranker and print a table."""

from typing import Annotated, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from knowledge_garden import db
from knowledge_garden.cli.app import app
from knowledge_garden.cli.commands.command_utils import run_with_cleanup
from knowledge_garden.config import get_config
from knowledge_garden.providers import OllamaEmbeddingProvider
from knowledge_garden.repository import SqlVectorIndex
from knowledge_garden.repository.source_adapters import build_source_adapters
from knowledge_garden.search.fusion import SearchWeights
from knowledge_garden.services.exceptions import GardenError
from knowledge_garden.services.search_service import SearchOutcome, SearchService

console = Console()


def display_results(query: str, outcome: SearchOutcome) -> None:
    table = Table(title=f"Results for {query!r}", show_header=True)
    table.add_column("score", justify="right")
    table.add_column("kind", style="cyan")
    table.add_column("title")
    table.add_column("exact/sim/rec", style="dim")
    for scored in outcome.results:
        candidate = scored.candidate
        table.add_row(
            f"{scored.score:.3f}",
            candidate.source_kind,
            candidate.title or candidate.text[:60],
            f"{scored.breakdown.exact:.0f}/{scored.breakdown.similarity:.2f}/"
            f"{scored.breakdown.recency:.2f}",
        )
    console.print(table)
    for source, error in sorted(outcome.errors.items()):
        console.print(f"[yellow]partial: {source}: {error}[/yellow]")


async def run_search(
    query: str, limit: Optional[int], weights: SearchWeights
) -> SearchOutcome:  # pragma: no cover
    app_config = get_config()
    _, session_maker = await db.get_or_create_db(app_config)
    provider = (
        OllamaEmbeddingProvider(app_config.vector_provider_url, app_config.embedding_model)
        if app_config.vector_provider_url
        else None
    )
    try:
        adapters = build_source_adapters(session_maker, SqlVectorIndex(session_maker))
        service = SearchService(adapters, app_config, provider)
        return await service.search_all(query, weights=weights, limit=limit)
    finally:
        if provider is not None:
            await provider.aclose()


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Free-text query")],
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum results"),
    exact_match_weight: Optional[float] = typer.Option(None, "--exact-weight"),
    similarity_weight: Optional[float] = typer.Option(None, "--similarity-weight"),
    recency_weight: Optional[float] = typer.Option(None, "--recency-weight"),
) -> None:
    """Search every source in the garden."""
    weights = SearchWeights.clamped(exact_match_weight, similarity_weight, recency_weight)
    try:
        outcome = run_with_cleanup(run_search(query, limit, weights))
    except GardenError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(code=1)
    except Exception as e:  # pragma: no cover
        logger.error(f"Error searching: {e}")
        typer.echo(f"Error searching: {e}", err=True)
        raise typer.Exit(code=1)
    display_results(query, outcome)
