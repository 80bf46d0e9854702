"""Logseq sync commands: sync, sync --check, force-db and force-git."""

from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from knowledge_garden import db
from knowledge_garden.cli.app import app
from knowledge_garden.cli.commands.command_utils import build_sync_service, run_with_cleanup
from knowledge_garden.config import get_config
from knowledge_garden.schemas.sync import SyncCheckResponse
from knowledge_garden.services.exceptions import GardenError
from knowledge_garden.sync import SyncStats

console = Console()


def display_stats(stats: SyncStats) -> None:
    table = Table(title="Logseq sync", show_header=True)
    table.add_column("", style="bold")
    table.add_column("processed", justify="right")
    table.add_column("created", justify="right", style="green")
    table.add_column("updated", justify="right", style="yellow")
    table.add_column("skipped", justify="right", style="dim")
    table.add_row(
        "pages",
        str(stats.pages_processed),
        str(stats.pages_created),
        str(stats.pages_updated),
        str(stats.pages_skipped),
    )
    table.add_row(
        "entities",
        str(stats.entities_processed),
        str(stats.entities_created),
        str(stats.entities_updated),
        str(stats.entities_skipped),
    )
    console.print(table)
    if stats.pages_pulled:
        console.print(f"Pulled {len(stats.pages_pulled)} changed page(s) from git")
    if stats.cancelled:
        console.print("[yellow]Sync was cancelled before all pages were processed[/yellow]")
    for error in stats.errors:
        console.print(f"[red]! {error}[/red]")


def display_check(report: SyncCheckResponse) -> None:
    if not (report.missing_in_db or report.missing_in_git or report.out_of_sync):
        console.print("[green]Logseq graph and database are in sync[/green]")
        return

    table = Table(title="Out of sync", show_header=True)
    table.add_column("page_path")
    table.add_column("state", style="yellow")
    table.add_column("entity")
    table.add_column("file modified")
    table.add_column("entity updated")
    for item in report.out_of_sync:
        table.add_row(
            item.page_path,
            item.state,
            item.entity.name if item.entity else "",
            item.file_modified_at.isoformat() if item.file_modified_at else "",
            item.entity_updated_at.isoformat() if item.entity_updated_at else "",
        )
    console.print(table)
    console.print(
        f"missing in db: {len(report.missing_in_db)}  missing in git: {len(report.missing_in_git)}"
    )


async def run_sync(check: bool) -> None:  # pragma: no cover
    app_config = get_config()
    _, session_maker = await db.get_or_create_db(app_config)
    service = build_sync_service(app_config, session_maker)
    if check:
        display_check(await service.perform_hard_sync_check())
    else:
        display_stats(await service.synchronize())


async def run_force_db(page_path: str) -> None:  # pragma: no cover
    app_config = get_config()
    _, session_maker = await db.get_or_create_db(app_config)
    entity = await build_sync_service(app_config, session_maker).force_update_db_from_file(
        page_path
    )
    console.print(
        f"[green]Updated entity[/green] {entity.entity_id} ({entity.name}) from {page_path}"
    )


async def run_force_git(entity_id: str) -> None:  # pragma: no cover
    app_config = get_config()
    _, session_maker = await db.get_or_create_db(app_config)
    entity, page_path = await build_sync_service(
        app_config, session_maker
    ).force_update_file_from_db(entity_id)
    console.print(f"[green]Wrote[/green] {page_path} from entity {entity.entity_id}")


def _run(command: str, coro) -> None:  # pragma: no cover
    try:
        run_with_cleanup(coro)
    except GardenError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"Error running {command}: {e}")
        typer.echo(f"Error running {command}: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def sync(
    check: bool = typer.Option(
        False, "--check", help="Only report what a sync would change"
    ),
) -> None:
    """Synchronize the database with the Logseq graph under LOGSEQ_ROOT."""
    _run("sync", run_sync(check))


@app.command("force-db")
def force_db(
    page_path: Annotated[str, typer.Argument(help="Page path relative to the Logseq root")],
) -> None:
    """Rewrite the entity for one page from its file."""
    _run("force-db", run_force_db(page_path))


@app.command("force-git")
def force_git(
    entity_id: Annotated[str, typer.Argument(help="Entity UUID")],
) -> None:
    """Rewrite one entity's page file from the database."""
    _run("force-git", run_force_git(entity_id))
