"""Inspect and clear replication checkpoints."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from mongo_es_sync.domain.models.checkpoint import DumpProgress
from mongo_es_sync.infrastructure.adapters.dump_progress_store import (
    DumpProgressReadError,
    JsonDumpProgressStore,
)
from mongo_es_sync.infrastructure.adapters.mongo_data_source import MotorDataSource
from mongo_es_sync.infrastructure.config.settings import Settings
from mongo_es_sync.infrastructure.cli.commands.run import build_token_store, load_settings

app = typer.Typer(help="Inspect and clear dump progress and resume tokens")
console = Console()


@app.command()
def show(
    config_path: str | None = typer.Option(None, "--config", help="Path to mongo-es-sync.toml configuration file"),
) -> None:
    """
    Show dump progress and resume token presence per collection.

    Examples:
        mongo-es-sync checkpoints show
    """
    settings = load_settings(config_path)
    store = JsonDumpProgressStore(settings.checkpoints.dump_progress_path)
    try:
        progress = store.progress
    except DumpProgressReadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    names = list(dict.fromkeys([*settings.collection_names(), *progress.entries]))
    if not names:
        console.print("[yellow]No collections configured and no dump progress recorded.[/yellow]")
        return

    tokens = asyncio.run(_token_presence(settings, names))
    mappings = settings.collection_mappings()

    table = Table(title="Replication checkpoints")
    table.add_column("Collection", style="cyan")
    table.add_column("Index")
    table.add_column("Last dumped _id")
    table.add_column("Resume token")

    for name in names:
        mapping = mappings.get(name)
        table.add_row(
            name,
            mapping.index if mapping else "[dim]not configured[/dim]",
            _format_progress(progress, name),
            "[green]yes[/green]" if tokens[name] else "[yellow]no[/yellow]",
        )

    console.print(table)


@app.command()
def clear(
    collection: str = typer.Option(..., "--collection", "-c", help="Collection whose checkpoints are removed"),
    config_path: str | None = typer.Option(None, "--config", help="Path to mongo-es-sync.toml configuration file"),
) -> None:
    """
    Remove the dump progress entry and resume token of a collection.

    The next run dumps the collection again from its first document.

    Examples:
        mongo-es-sync checkpoints clear --collection users
    """
    settings = load_settings(config_path)
    try:
        asyncio.run(_clear(settings, collection))
    except DumpProgressReadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Cleared checkpoints for {collection}[/green]")


def _format_progress(progress: DumpProgress, collection: str) -> str:
    if not progress.has(collection):
        return "[dim]none[/dim]"
    return str(progress.get(collection))


async def _token_presence(settings: Settings, names: list[str]) -> dict[str, bool]:
    data_source = MotorDataSource.from_url(settings.mongo.url, settings.mongo.database)
    try:
        token_store = build_token_store(settings, data_source)
        return {name: await token_store.load(name) is not None for name in names}
    finally:
        data_source.close()


async def _clear(settings: Settings, collection: str) -> None:
    data_source = MotorDataSource.from_url(settings.mongo.url, settings.mongo.database)
    try:
        await JsonDumpProgressStore(settings.checkpoints.dump_progress_path).clear(collection)
        await build_token_store(settings, data_source).remove(collection)
    finally:
        data_source.close()
